"""
api/routes/v1/auth.py -- Authentication and session REST endpoints.

Routes:
  POST /auth/register        -- create account; 201
  POST /auth/login           -- open a session; returns access + refresh token
  POST /auth/refresh         -- rotate a refresh token; returns a new pair
  POST /auth/logout          -- revoke the session of the presented access token
  POST /auth/logout-device   -- revoke another of the caller's sessions by jti
  POST /auth/revoke          -- revoke every token the caller holds
  GET  /auth/sessions        -- list the caller's active sessions

Security:
  Login returns the same error for unknown email and wrong password.
  Cache-Control: no-store on every response that carries tokens.
  Handlers are sync (def): bcrypt is CPU-bound and runs in the threadpool.
  Ownership of a logout-device target is checked in SessionManager.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    LoginResponse,
    LogoutDeviceRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    TokenPairResponse,
    UserSummary,
)
from auth.dependencies import AuthContext, get_auth_context
from auth.models import Platform
from auth.sessions import SessionManager
from auth.store import to_iso

# Auth policy:
# - POST /auth/register:       public
# - POST /auth/login:          public
# - POST /auth/refresh:        public -- the refresh token is the credential
# - POST /auth/logout:         requires auth (get_auth_context)
# - POST /auth/logout-device:  requires auth + ownership check in SessionManager
# - POST /auth/revoke:         requires auth (get_auth_context)
# - GET  /auth/sessions:       requires auth (get_auth_context)
router = APIRouter()


def _manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an account and seed its default categories."""
    user = _manager(request).register(body.email, body.password)
    return RegisterResponse(id=user.id, email=user.email, created_at=user.created_at or "")


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and open a new session chain.

    User-Agent and client IP are recorded on the session and carried
    forward through every rotation.
    """
    result = _manager(request).login(
        body.email,
        body.password,
        Platform(body.platform.value),
        device_label=body.device_label,
        user_agent=request.headers.get("user-agent"),
        ip=request.client.host if request.client else None,
    )
    content = LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserSummary(id=result.user.id, email=result.user.email),
    ).model_dump(by_alias=True)
    return _no_store(content)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Rotate a refresh token. The presented token is dead after this call."""
    pair = _manager(request).refresh(body.refresh_token)
    content = TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    ).model_dump(by_alias=True)
    return _no_store(content)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> MessageResponse:
    """Revoke the session the presented access token belongs to."""
    return MessageResponse(message=_manager(request).logout(ctx.user.id, ctx.jti))


@router.post("/auth/logout-device", response_model=MessageResponse)
def logout_device(
    request: Request,
    body: LogoutDeviceRequest,
    ctx: AuthContext = Depends(get_auth_context),
) -> MessageResponse:
    """Revoke one of the caller's other sessions, identified by its jti."""
    return MessageResponse(message=_manager(request).logout_device(body.jti, ctx.user.id))


@router.post("/auth/revoke", response_model=MessageResponse)
def revoke_all(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> MessageResponse:
    """Invalidate every access and refresh token the caller holds."""
    return MessageResponse(message=_manager(request).revoke_all(ctx.user.id))


@router.get("/auth/sessions", response_model=list[SessionResponse])
def list_sessions(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> list[SessionResponse]:
    """List sessions that would still authenticate, marking the current one."""
    return [
        SessionResponse(
            jti=s.jti,
            platform=s.platform.value,
            device_label=s.device_label,
            user_agent=s.user_agent,
            ip=s.ip,
            created_at=to_iso(s.created_at),
            last_used_at=to_iso(s.last_used_at),
            expires_at=to_iso(s.expires_at),
            current=s.jti == ctx.jti,
        )
        for s in _manager(request).list_active_sessions(ctx.user.id)
    ]
