"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial derived
properties). Stores and the session manager do the work.

Layer rule: no imports from api/, core/, or categories/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class Platform(str, Enum):
    """Client platform a session was opened from."""

    WEB = "WEB"
    MOBILE = "MOBILE"


@dataclass
class User:
    """An account that can open sessions.

    email is stored lowercase; lookups normalize before querying.

    token_version is the per-user revocation epoch. Every token embeds the
    value current at signing time; bumping it (revoke-all) makes every older
    token fail verification without touching the session rows.
    """

    email: str
    hashed_password: str
    id: str | None = None
    token_version: int = 0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """One step of a refresh-token rotation chain.

    jti is the public identifier embedded in both tokens issued for this
    step. refresh_hash is bcrypt over the keyed digest of the exact refresh
    token string; the raw token is never persisted.

    replaced_by_jti is None until the session is rotated forward. A session
    revoked by logout keeps replaced_by_jti None -- that is a terminal revoke.

    token_version records the owner's epoch at creation so active-session
    listings can hide sessions killed by a later revoke-all.
    """

    user_id: str
    jti: str
    refresh_hash: str
    platform: Platform
    expires_at: datetime
    id: str | None = None
    device_label: str | None = None
    user_agent: str | None = None
    ip: str | None = None
    token_version: int = 0
    revoked_at: datetime | None = None
    replaced_by_jti: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or datetime.now(timezone.utc))

    def is_live(self, now: datetime | None = None) -> bool:
        """Live means not revoked and not yet expired."""
        return self.revoked_at is None and not self.is_expired(now)
