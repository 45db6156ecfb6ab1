"""Client connection handle wrapping an aiohttp WebSocketResponse."""
from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from aiohttp import web


class ClientConnection:
    """
    Opaque handle for one live WebSocket session.

    Hashes by identity, so the registry can index it directly.
    """

    def __init__(self, ws: web.WebSocketResponse, remote: Optional[str] = None) -> None:
        self.connection_id: str = uuid.uuid4().hex[:12]
        self.remote = remote
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send_event(self, event: str, data: Dict[str, Any]) -> None:
        if self._ws.closed:
            raise ConnectionResetError(f"connection {self.connection_id} is closed")
        await self._ws.send_json({"event": event, "data": data})

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()

    def __repr__(self) -> str:
        return f"ClientConnection({self.connection_id}, remote={self.remote})"
