"""
auth/sessions.py -- Session lifecycle: registration, login, rotation, revocation.

SessionManager is the only place that decides whether a session may be
created, rotated, or revoked. It composes three collaborators:

  UserStore      -- credentials and the per-user token_version epoch
  SessionStore   -- one row per rotation-chain step, keyed by jti
  auth.tokens    -- JWT signing/verification and bcrypt hashing

plus an optional category seeder called after registration.

Revocation model:
  Per-session:  logout / logout_device set revoked_at on one row.
  Per-chain:    refresh() revokes the presented row and links it to its
                successor via replaced_by_jti, in one transaction.
  Per-user:     revoke_all() bumps token_version. Rows are left as they are;
                every token minted under the old epoch stops verifying.

Reuse detection:
  Presenting a refresh token whose session is already revoked fails with
  Unauthorized and nothing else happens. The rest of the chain is NOT
  revoked, so a replayed token cannot be used to log the real owner out.

Every failure is an AuthError subclass. Client-visible messages are coarse:
login never distinguishes an unknown email from a wrong password.

Layer rule: no imports from api/ or categories/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.exc import IntegrityError

from auth.errors import BadRequest, Conflict, Unauthorized
from auth.models import Platform, Session, User
from auth.store import SessionStore, UserStore
from auth.tokens import (
    authenticate_credentials,
    decode_refresh_token,
    hash_password,
    hash_refresh_token,
    new_jti,
    sign_access,
    sign_refresh,
    verify_refresh_token,
)
from core.config import get_settings

logger = logging.getLogger("taskauth.auth")


class CategorySeeder(Protocol):
    def create_default_categories(self, user_id: str) -> list: ...


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: User


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SessionManager:
    """Orchestrates every state change of users' sessions.

    Usage:
        manager = SessionManager(UserStore(url), SessionStore(url), CategoryStore(url))
        manager.register("a@x.com", "pw123456")
        result = manager.login("a@x.com", "pw123456", Platform.WEB)
        pair = manager.refresh(result.refresh_token)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        categories: CategorySeeder | None = None,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.categories = categories

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> User:
        """Create an account. Raises Conflict if the email is taken."""
        email = normalize_email(email)
        if self.users.get_by_email(email) is not None:
            raise Conflict("User with this email already exists")

        try:
            user = self.users.create_user(User(email=email, hashed_password=hash_password(password)))
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            raise Conflict("User with this email already exists") from exc

        if self.categories is not None:
            try:
                self.categories.create_default_categories(user.id)
            except Exception:
                logger.exception("Default category seeding failed for user %s", user.id)

        logger.info("Registered user %s", user.id)
        return user

    def login(
        self,
        email: str,
        password: str,
        platform: Platform | str,
        device_label: str | None = None,
        user_agent: str | None = None,
        ip: str | None = None,
    ) -> LoginResult:
        """Check credentials and open a new session chain.

        This is the only operation that creates a session without revoking
        a predecessor.
        """
        user = authenticate_credentials(self.users, normalize_email(email), password)
        if user is None:
            raise Unauthorized("Invalid credentials")

        jti = new_jti()
        refresh_token = sign_refresh(user.id, user.token_version, jti)
        self.sessions.create_session(
            Session(
                user_id=user.id,
                jti=jti,
                refresh_hash=hash_refresh_token(refresh_token),
                platform=Platform(platform),
                device_label=device_label,
                user_agent=user_agent,
                ip=ip,
                token_version=user.token_version,
                expires_at=self._refresh_expiry(),
            )
        )
        access_token = sign_access(user.id, user.token_version, jti)
        logger.info("Login user=%s jti=%s platform=%s", user.id, jti, Platform(platform).value)
        return LoginResult(access_token=access_token, refresh_token=refresh_token, user=user)

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair.

        Checks run in a fixed order and the first failure wins. On success
        the presented session is revoked and linked to a new one carrying
        the same platform and device metadata.
        """
        payload = decode_refresh_token(refresh_token)
        if payload is None:
            raise Unauthorized("Invalid or expired refresh token")

        session = self.sessions.get_by_jti(payload["jti"])
        if session is None or session.user_id != payload["sub"]:
            raise Unauthorized("Session not found")

        if session.revoked_at is not None:
            logger.warning("Refresh token reuse detected user=%s jti=%s", session.user_id, session.jti)
            raise Unauthorized("Refresh token has been revoked")

        if session.is_expired():
            raise Unauthorized("Session expired")

        if not verify_refresh_token(refresh_token, session.refresh_hash):
            logger.warning("Refresh token hash mismatch user=%s jti=%s", session.user_id, session.jti)
            raise Unauthorized("Invalid refresh token")

        user = self.users.get_by_id(session.user_id)
        if user is None or payload["tokenVersion"] != user.token_version:
            raise Unauthorized("Token has been globally revoked")

        jti = new_jti()
        new_refresh_token = sign_refresh(user.id, user.token_version, jti)
        successor = Session(
            user_id=user.id,
            jti=jti,
            refresh_hash=hash_refresh_token(new_refresh_token),
            platform=session.platform,
            device_label=session.device_label,
            user_agent=session.user_agent,
            ip=session.ip,
            token_version=user.token_version,
            expires_at=self._refresh_expiry(),
        )
        if self.sessions.rotate(session.jti, successor) is None:
            # A concurrent refresh or logout revoked the row after our read.
            logger.warning("Lost rotation race user=%s jti=%s", session.user_id, session.jti)
            raise Unauthorized("Refresh token has been revoked")

        logger.info("Rotated session user=%s %s -> %s", user.id, session.jti, jti)
        return TokenPair(
            access_token=sign_access(user.id, user.token_version, jti),
            refresh_token=new_refresh_token,
        )

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def logout(self, user_id: str, jti: str) -> str:
        """Terminally revoke the caller's current session.

        A second call for the same jti fails with BadRequest.
        """
        session = self._owned_session(user_id, jti)
        if session.revoked_at is not None or not self.sessions.revoke(jti):
            raise BadRequest("Session already logged out")
        logger.info("Logout user=%s jti=%s", user_id, jti)
        return "Logged out successfully"

    def logout_device(self, jti: str, caller_user_id: str) -> str:
        """Revoke another of the caller's sessions by jti.

        Revoking an already-revoked target succeeds without writing.
        """
        session = self._owned_session(caller_user_id, jti)
        if session.revoked_at is None:
            self.sessions.revoke(jti)
        logger.info("Device logout user=%s jti=%s", caller_user_id, jti)
        return "Device logged out successfully"

    def revoke_all(self, user_id: str) -> str:
        """Invalidate every token the user holds by bumping token_version."""
        version = self.users.bump_token_version(user_id)
        if version is None:
            raise Unauthorized("User not found")
        logger.info("Revoked all sessions user=%s token_version=%d", user_id, version)
        return "All sessions revoked successfully"

    def list_active_sessions(self, user_id: str) -> list[Session]:
        """Sessions that would still authenticate right now, newest first."""
        user = self.users.get_by_id(user_id)
        if user is None:
            return []
        return self.sessions.list_active(user_id, user.token_version)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _owned_session(self, user_id: str, jti: str) -> Session:
        session = self.sessions.get_by_jti(jti)
        if session is None:
            raise BadRequest("Session not found")
        if session.user_id != user_id:
            raise Unauthorized("Not authorized to revoke this session")
        return session

    @staticmethod
    def _refresh_expiry() -> datetime:
        return datetime.now(timezone.utc) + get_settings().refresh_token_ttl
