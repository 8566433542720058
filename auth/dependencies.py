"""
auth/dependencies.py -- Request authentication for bearer access tokens.

authenticate_token() is the pure check: JWT signature/expiry, owner exists,
token_version still current, session row present, unrevoked and unexpired.
It raises Unauthorized on the first failure and returns an AuthContext
carrying both the User and the session jti on success.

get_auth_context() is the FastAPI dependency wrapper. Handlers take the
AuthContext as an explicit parameter; the jti lets POST /auth/logout target
the caller's current session without the client resending it.

Layer rule: no imports from api/ or categories/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from auth.errors import Unauthorized
from auth.models import User
from auth.store import SessionStore, UserStore
from auth.tokens import decode_access_token


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, and through which session."""

    user: User
    jti: str


def authenticate_token(token: str, users: UserStore, sessions: SessionStore) -> AuthContext:
    """Validate a bearer access token against the stores.

    Order matters: the token_version check runs before the session lookup
    so a revoke-all is reported as such even for sessions that were also
    logged out individually.
    """
    payload = decode_access_token(token)
    if payload is None:
        raise Unauthorized("Invalid or expired token")

    user = users.get_by_id(payload["sub"])
    if user is None:
        raise Unauthorized("User not found")

    if payload["tokenVersion"] != user.token_version:
        raise Unauthorized("Token has been revoked (global logout)")

    session = sessions.get_by_jti(payload["jti"])
    if session is None or session.user_id != user.id:
        raise Unauthorized("Session not found")
    if session.revoked_at is not None:
        raise Unauthorized("Session has been logged out")
    if session.is_expired():
        raise Unauthorized("Session expired")

    sessions.touch(session.jti)
    return AuthContext(user=user, jti=session.jti)


def bearer_token(request: Request) -> str | None:
    """Extract the token from an "Authorization: Bearer <token>" header."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_auth_context(request: Request) -> AuthContext:
    """Require a valid bearer access token. Raises Unauthorized otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(ctx: AuthContext = Depends(get_auth_context)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise Unauthorized("Authentication required.")
    return authenticate_token(token, request.app.state.user_store, request.app.state.session_store)
