from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class LobbyWebSocketHub:
    """Pushes "the lobby document moved" hints to every connected browser.

    Each hint carries a per-process sequence number, the writing context's
    instance id and the document's `lastUpdated` stamp. Clients compare the
    stamp with what they last fetched and re-read state over HTTP when it moved.
    """

    def __init__(self) -> None:
        self._conns: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._seq = 0

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._conns.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._conns.discard(websocket)

    async def announce_state_changed(self, *, instance_id: str, last_updated: int | None) -> int:
        """Tell every socket the shared document changed. Returns the hint's sequence number."""

        async with self._lock:
            self._seq += 1
            seq = self._seq
            conns = list(self._conns)

        payload = {
            "type": "state_changed",
            "seq": seq,
            "instanceId": instance_id,
            "lastUpdated": last_updated,
        }

        delivered = await asyncio.gather(*(self._send(ws, payload) for ws in conns))
        stale = [ws for ws, ok in zip(conns, delivered) if not ok]
        if stale:
            logger.info("Dropping %d closed lobby socket(s)", len(stale))
            async with self._lock:
                self._conns.difference_update(stale)
        return seq

    @staticmethod
    async def _send(ws: WebSocket, payload: dict[str, object]) -> bool:
        try:
            await ws.send_json(payload)
        except Exception:
            return False
        return True


hub = LobbyWebSocketHub()
