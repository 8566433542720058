"""
api/routes/v1/users.py -- Current-user endpoint.

Routes:
  GET /users/me -- profile of the authenticated caller (requires auth)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MeResponse
from auth.dependencies import AuthContext, get_auth_context

router = APIRouter()


@router.get("/users/me", response_model=MeResponse)
def me(ctx: AuthContext = Depends(get_auth_context)) -> MeResponse:
    """Return the caller's profile without the password hash or token_version."""
    user = ctx.user
    return MeResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at or "",
        updated_at=user.updated_at or "",
    )
