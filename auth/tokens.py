"""
auth/tokens.py -- JWT codec, password hashing, and refresh-token hashing.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens both carry
       {sub, tokenVersion, jti} plus a "type" claim so a refresh token cannot
       be replayed as a bearer token and vice versa. Lifetimes come from
       ACCESS_TOKEN_EXPIRES_IN / REFRESH_TOKEN_EXPIRES_IN. Verification
       returns None on any failure -- callers turn that into Unauthorized.

  Passwords: bcrypt directly (no passlib wrapper) with BCRYPT_ROUNDS cost.
       The _dummy_hash() value enables timing equalization in
       authenticate_credentials() so response time does not reveal whether
       an email is registered.

  Refresh tokens: the stored refresh_hash is bcrypt over
       HMAC-SHA256(SECRET_KEY, token). bcrypt only reads the first 72 bytes
       of its input and every JWT from this service shares a longer header
       prefix than that, so hashing the raw token would let any token match
       any hash. The HMAC digest is 64 hex chars, inside bcrypt's limit, and
       bcrypt keeps the intentionally slow cost on top.

Layer rule: no imports from api/ or categories/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("taskauth.auth")

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

_REQUIRED_CLAIMS = ("sub", "tokenVersion", "jti", "type")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt rejects inputs longer than 72 bytes; the API layer caps password
    length at 72 characters.
    """
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def _dummy_hash() -> str:
    # Computed once, on first login, at the configured cost.
    return hash_password("taskauth_timing_dummy")


def authenticate_credentials(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _dummy_hash() (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _dummy_hash())
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Refresh-token hashing
# ---------------------------------------------------------------------------


def _refresh_digest(token: str) -> bytes:
    return hmac.new(
        get_settings().secret_key.encode(),
        token.encode(),
        hashlib.sha256,
    ).hexdigest().encode()


def hash_refresh_token(token: str) -> str:
    """Return the bcrypt hash stored as Session.refresh_hash for token."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_refresh_digest(token), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_refresh_token(token: str, refresh_hash: str) -> bool:
    """Return True if token is the exact string refresh_hash was computed from."""
    try:
        return bcrypt.checkpw(_refresh_digest(token), refresh_hash.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def new_jti() -> str:
    """Generate a fresh session identifier."""
    return str(uuid.uuid4())


def _sign(token_type: str, sub: str, token_version: int, jti: str) -> str:
    settings = get_settings()
    ttl = settings.access_token_ttl if token_type == ACCESS else settings.refresh_token_ttl
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "tokenVersion": token_version,
        "jti": jti,
        "type": token_type,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def sign_access(sub: str, token_version: int, jti: str) -> str:
    """Sign a short-lived access token for one session step."""
    return _sign(ACCESS, sub, token_version, jti)


def sign_refresh(sub: str, token_version: int, jti: str) -> str:
    """Sign a long-lived refresh token for one session step."""
    return _sign(REFRESH, sub, token_version, jti)


def decode_token(token: str, token_type: str) -> dict | None:
    """Decode and verify a JWT of the given type. Returns the payload or None.

    None covers malformed input, a bad signature, expiry, a missing claim,
    and a token of the other type.
    """
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if any(claim not in payload for claim in _REQUIRED_CLAIMS):
        return None
    if payload["type"] != token_type or not isinstance(payload["tokenVersion"], int):
        return None
    return payload


def decode_access_token(token: str) -> dict | None:
    return decode_token(token, ACCESS)


def decode_refresh_token(token: str) -> dict | None:
    return decode_token(token, REFRESH)
