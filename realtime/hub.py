"""
realtime/hub.py -- Registry of live, authenticated WebSocket connections.

ConnectionHub is the injected publish(topic, payload) capability that HTTP
handlers use to push events to connected clients. One hub lives on
app.state.hub for the process lifetime; handlers receive it via Depends().

Every connection in the hub has already passed the handshake gate, so the
hub never holds an unauthenticated or blocked socket. When an identity is
blocked, close_identity() drops its live sockets so the block applies to
open connections too, not just to new handshakes.

All methods run on the event loop; registry mutations happen between awaits
and fan-out iterates over a snapshot, so no lock is needed.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger("samaj.realtime")

# Application-defined close code (4000-4999 range): account blocked.
CLOSE_ACCOUNT_BLOCKED = 4403


class ConnectionHub:
    """Track sockets per identity and fan out published events."""

    def __init__(self) -> None:
        self._connections: dict[int, set[WebSocket]] = {}

    def connect(self, identity_id: int, websocket: WebSocket) -> None:
        self._connections.setdefault(identity_id, set()).add(websocket)

    def disconnect(self, identity_id: int, websocket: WebSocket) -> None:
        sockets = self._connections.get(identity_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[identity_id]

    def connection_count(self, identity_id: int | None = None) -> int:
        if identity_id is not None:
            return len(self._connections.get(identity_id, ()))
        return sum(len(s) for s in self._connections.values())

    async def publish(self, topic: str, payload: Any, *, identity_id: int | None = None) -> int:
        """Send {"event": topic, "data": payload} to every socket, or to one identity's.

        Returns the number of sockets the event reached. Sockets that fail to
        receive are dropped from the registry.
        """
        message = {"event": topic, "data": payload}
        if identity_id is not None:
            targets = [(identity_id, ws) for ws in list(self._connections.get(identity_id, ()))]
        else:
            targets = [(iid, ws) for iid, sockets in list(self._connections.items()) for ws in list(sockets)]

        delivered = 0
        for iid, ws in targets:
            try:
                await ws.send_json(message)
            except Exception as exc:  # dead socket; whatever the server impl raises
                logger.warning("Dropping socket for identity %s on publish %s: %s", iid, topic, exc)
                self.disconnect(iid, ws)
                continue
            delivered += 1
        return delivered

    async def close_identity(self, identity_id: int, *, code: int = CLOSE_ACCOUNT_BLOCKED, reason: str = "") -> int:
        """Close and forget every socket bound to `identity_id`. Returns the count."""
        sockets = self._connections.pop(identity_id, set())
        for ws in sockets:
            try:
                await ws.close(code=code, reason=reason)
            except Exception as exc:  # already closed by the peer
                logger.debug("Socket for identity %s already closed: %s", identity_id, exc)
        if sockets:
            logger.info("Closed %d socket(s) for identity %s", len(sockets), identity_id)
        return len(sockets)
