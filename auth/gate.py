"""
auth/gate.py -- Authorization gate shared by every transport.

The gate is evaluative only: it reads the subject identity once and raises a
typed failure, it never writes. Both the HTTP dependency (auth/dependencies.py)
and the WebSocket handshake (realtime/handshake.py) call
require_authenticated(); they differ only in where the token comes from and
how a failure is reported.

Freshness: the token proves who the caller was at issue time. The identity
is reloaded on every call so a block, delete or (theoretical) un-verify
takes effect immediately, regardless of the token's remaining lifetime.

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

from auth.errors import AccountBlocked, Forbidden, InvalidToken, MissingToken, ProtectedRole
from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import SessionTokenCodec


def require_authenticated(store: IdentityStore, codec: SessionTokenCodec, token: str | None) -> Identity:
    """Resolve `token` to the current Identity or raise.

    Raises:
        MissingToken:   no token supplied.
        InvalidToken:   bad signature/structure/expiry, or the subject no
                        longer exists or is not verified.
        AccountBlocked: the subject is blocked.
    """
    if not token:
        raise MissingToken()
    identity_id = codec.verify(token)
    if identity_id is None:
        raise InvalidToken()
    identity = store.get_by_id(identity_id)
    if identity is None or not identity.is_verified:
        raise InvalidToken()
    if identity.is_blocked:
        raise AccountBlocked()
    return identity


def require_role(identity: Identity, role: str) -> Identity:
    """Raise Forbidden unless `identity` currently holds `role`."""
    if identity.role != role:
        raise Forbidden()
    return identity


def ensure_mutable_target(target: Identity) -> Identity:
    """Raise ProtectedRole if `target` is an admin.

    Admin accounts cannot be blocked, deleted or edited through the admin
    management surface, not even by another admin.
    """
    if target.is_admin:
        raise ProtectedRole()
    return target
