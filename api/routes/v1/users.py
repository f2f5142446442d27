"""
api/routes/v1/users.py -- Profile self-edit and admin identity management.

Routes:
  PUT    /api/v1/users/profile      -- edit own username/email/phone/membership no.
  GET    /api/v1/users              -- list identities (admin only)
  PATCH  /api/v1/users/{id}/block   -- toggle blocked flag (admin only)
  PUT    /api/v1/users/{id}         -- edit fields and role (admin only)
  DELETE /api/v1/users/{id}         -- delete identity (admin only)

Security:
  Admin targets are immutable here (ProtectedRole), including for other
  admins -- enforced in IdentityLifecycle via auth.gate.ensure_mutable_target.
  Blocking also closes the target's live WebSocket connections, so the block
  is not limited to new handshakes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import (
    AdminIdentityUpdate,
    BlockResponse,
    IdentityResponse,
    MessageResponse,
    ProfileUpdate,
)
from auth.dependencies import get_current_identity, get_lifecycle, require_admin
from auth.lifecycle import IdentityLifecycle
from auth.models import Identity
from realtime.hub import ConnectionHub

logger = logging.getLogger("samaj.api")

# Auth policy:
# - PUT    /api/v1/users/profile:     requires auth (get_current_identity)
# - GET    /api/v1/users:             requires admin (require_admin)
# - PATCH  /api/v1/users/{id}/block:  requires admin (require_admin)
# - PUT    /api/v1/users/{id}:        requires admin (require_admin)
# - DELETE /api/v1/users/{id}:        requires admin (require_admin)
router = APIRouter()


def get_hub(request: Request) -> ConnectionHub:
    return request.app.state.hub


@router.put("/users/profile", response_model=IdentityResponse)
async def update_profile(
    body: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> IdentityResponse:
    """Edit the caller's own contact fields. Uniqueness is re-checked."""
    updated = lifecycle.update_profile(identity, **body.model_dump())
    return IdentityResponse.from_identity(updated)


@router.get("/users", response_model=list[IdentityResponse])
async def list_users(
    admin: Identity = Depends(require_admin),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> list[IdentityResponse]:
    return [IdentityResponse.from_identity(i) for i in lifecycle.list_identities()]


@router.patch("/users/{user_id}/block", response_model=BlockResponse)
async def toggle_block(
    user_id: int,
    admin: Identity = Depends(require_admin),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
    hub: ConnectionHub = Depends(get_hub),
) -> BlockResponse:
    """Flip the blocked flag on a member account."""
    target = lifecycle.toggle_block(user_id)
    topic = "identity.blocked" if target.is_blocked else "identity.unblocked"
    if target.is_blocked:
        await hub.close_identity(target.id, reason="Account blocked")
    await hub.publish(topic, {"id": target.id}, identity_id=admin.id)
    logger.info("Admin %s set blocked=%s on identity %s", admin.id, target.is_blocked, target.id)
    return BlockResponse(
        message=f"User {'blocked' if target.is_blocked else 'unblocked'} successfully.",
        user=IdentityResponse.from_identity(target),
    )


@router.put("/users/{user_id}", response_model=IdentityResponse)
async def update_user(
    user_id: int,
    body: AdminIdentityUpdate,
    admin: Identity = Depends(require_admin),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> IdentityResponse:
    """Edit a member's fields or role. Admin targets are rejected."""
    updated = lifecycle.admin_update(user_id, **body.model_dump())
    logger.info("Admin %s updated identity %s", admin.id, user_id)
    return IdentityResponse.from_identity(updated)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    admin: Identity = Depends(require_admin),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
    hub: ConnectionHub = Depends(get_hub),
) -> MessageResponse:
    """Delete a member account. Admin targets are rejected."""
    lifecycle.delete(user_id)
    await hub.close_identity(user_id, reason="Account deleted")
    logger.info("Admin %s deleted identity %s", admin.id, user_id)
    return MessageResponse(message="User deleted successfully.")
