"""
realtime/routes.py -- The WebSocket endpoint.

Routes:
  WS /ws?token=<jwt>  -- authenticated event stream

Protocol (JSON text frames):
  server -> client  {"event": "connected", "data": {"id", "username", "role"}}
  client -> server  {"event": "ping"}          server replies {"event": "pong"}
  server -> client  {"event": <topic>, "data": ...}   from ConnectionHub.publish
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from realtime.handshake import AUTH_ERROR_REASON, authenticate_handshake
from realtime.hub import ConnectionHub

logger = logging.getLogger("samaj.realtime")

router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    """Admit an authenticated socket and keep it registered until it closes."""
    state = websocket.app.state
    identity = await authenticate_handshake(websocket, state.identity_store, state.codec)
    if identity is None:
        return

    hub: ConnectionHub = state.hub
    hub.connect(identity.id, websocket)
    # A block committed between the gate read and connect() found nothing to close.
    current = state.identity_store.get_by_id(identity.id)
    if current is None or current.is_blocked:
        hub.disconnect(identity.id, websocket)
        logger.warning("WebSocket handshake rejected (blocked during admission) for %s", identity.id)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=AUTH_ERROR_REASON)
        return

    await websocket.accept()
    logger.info("User connected: %s", identity.id)
    try:
        await websocket.send_json(
            {
                "event": "connected",
                "data": {"id": identity.id, "username": identity.username, "role": identity.role},
            }
        )
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_json({"event": "error", "data": {"code": "invalid_json"}})
                continue
            if isinstance(message, dict) and message.get("event") == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(identity.id, websocket)
        logger.info("User disconnected: %s", identity.id)
