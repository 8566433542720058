"""
auth/errors.py -- Domain error taxonomy for the auth and categories layers.

Stores and the session manager raise these instead of fastapi.HTTPException
so they stay usable from the CLI and from unit tests without an ASGI app.
api/main.py registers one exception handler that maps every AuthError onto
the standard {"error": {...}} envelope using status_code and code below.

Layer rule: no imports from api/, core/, or categories/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. message is the client-visible text."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequest(AuthError):
    status_code = 400
    code = "bad_request"


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"


class NotFound(AuthError):
    status_code = 404
    code = "not_found"


class Conflict(AuthError):
    status_code = 409
    code = "conflict"
