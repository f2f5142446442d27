"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Credentials arrive as an `Authorization: Bearer <token>` header. The header
is handed to auth.gate.require_authenticated(), which raises typed
IdentityError subclasses; api/main.py renders those as the structured error
envelope, so nothing unstructured ever crosses the HTTP boundary.

The resolved Identity is returned into the handler's signature rather than
attached to the request object:
    @router.get("/protected")
    async def route(identity: Identity = Depends(get_current_identity)): ...

Layer rule: no imports from api/, core/, or realtime/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.gate import require_authenticated, require_role
from auth.lifecycle import IdentityLifecycle
from auth.models import ROLE_ADMIN, Identity


def bearer_token(request: Request) -> str | None:
    """Return the token from an `Authorization: Bearer` header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_lifecycle(request: Request) -> IdentityLifecycle:
    return request.app.state.lifecycle


def get_current_identity(request: Request) -> Identity:
    """Require a valid session token. Raises MissingToken/InvalidToken/AccountBlocked."""
    return require_authenticated(
        request.app.state.identity_store,
        request.app.state.codec,
        bearer_token(request),
    )


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Require the admin role. Raises Forbidden for members."""
    return require_role(identity, ROLE_ADMIN)
