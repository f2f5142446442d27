"""
realtime/handshake.py -- Authenticate a WebSocket before it is admitted.

The token travels in the handshake itself (`/ws?token=<jwt>`) because the
browser WebSocket API cannot set an Authorization header and the check must
complete before any message framing exists.

Verification is auth.gate.require_authenticated(), the same gate the HTTP
dependency uses. On failure the socket is closed *before* accept(), which the
ASGI server turns into a rejected upgrade: no connection is ever established
for an unauthenticated or blocked identity. Every failure carries the same
generic "Authentication error" reason.
"""

from __future__ import annotations

import logging

from fastapi import WebSocket, status

from auth.errors import IdentityError
from auth.gate import require_authenticated
from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import SessionTokenCodec

logger = logging.getLogger("samaj.realtime")

AUTH_ERROR_REASON = "Authentication error"


def handshake_token(websocket: WebSocket) -> str | None:
    return websocket.query_params.get("token") or None


async def authenticate_handshake(
    websocket: WebSocket,
    store: IdentityStore,
    codec: SessionTokenCodec,
) -> Identity | None:
    """Return the connecting Identity, or close the handshake and return None."""
    try:
        return require_authenticated(store, codec, handshake_token(websocket))
    except IdentityError as exc:
        client = websocket.client.host if websocket.client else "unknown"
        logger.warning("WebSocket handshake rejected (%s) from %s", exc.error_code, client)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=AUTH_ERROR_REASON)
        return None
