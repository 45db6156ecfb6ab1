"""GeoDispatch client - aiohttp wrapper for the HTTP endpoints and the WebSocket channel."""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import aiohttp
from yarl import URL


def _normalize_base_url(base_url: str) -> str:
    base_url = base_url.strip()
    if not base_url:
        raise ValueError("Base URL is empty")
    if not base_url.startswith(("http://", "https://")):
        base_url = "http://" + base_url
    return base_url.rstrip("/")


def _position(latitude: float, longitude: float) -> Dict[str, float]:
    return {"latitude": latitude, "longitude": longitude}


class GeoDispatchSocket:
    """Live presence connection. One per logged-in user."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        await self._ws.send_json({"event": event, "data": data})

    async def receive_event(self, timeout: Optional[float] = None) -> Tuple[str, Dict[str, Any]]:
        """Wait for the next server event and return (event, data)."""
        frame = await self._ws.receive_json(timeout=timeout)
        return frame.get("event"), frame.get("data") or {}

    async def wait_for(self, event: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Skip frames until one named event arrives."""
        while True:
            name, data = await self.receive_event(timeout=timeout)
            if name == event:
                return data

    async def register_identity(
        self,
        username: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        timeout: Optional[float] = 10,
    ) -> bool:
        """Bind this connection to a registered username. True once the server confirms."""
        data: Dict[str, Any] = {"username": username}
        if latitude is not None and longitude is not None:
            data["position"] = _position(latitude, longitude)
        await self.emit("registerIdentity", data)
        result = await self.wait_for("identityResult", timeout=timeout)
        return result.get("status") == "bound"

    async def send_message(
        self, message: str, latitude: float, longitude: float, timeout: Optional[float] = 10
    ) -> Dict[str, Any]:
        await self.emit("sendMessage", {"message": message, "position": _position(latitude, longitude)})
        return await self.wait_for("sendResult", timeout=timeout)

    async def close(self) -> None:
        await self._ws.close()


class GeoDispatchClient:
    """
    Minimal aiohttp client for a GeoDispatch server.

    HTTP calls return (status, body) so callers can tell DuplicateUser,
    NoRecipient and InvalidInput apart without exceptions.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: int = 20,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url)
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None
        self._extra_headers = headers or {}

    def _build_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", **self._extra_headers}

    def _url(self, path: str) -> URL:
        path = path if path.startswith("/") else f"/{path}"
        return URL(self.base_url) / path.lstrip("/")

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, *exc):
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if not self._session:
            raise RuntimeError("GeoDispatchClient not started. Use `async with GeoDispatchClient(...)`.")
        return self._session

    async def _post_json(self, path: str, json: Any) -> Tuple[int, Any]:
        async with self.session.post(self._url(path), json=json, headers=self._build_headers()) as r:
            return r.status, await r.json(content_type=None)

    async def _get_json(self, path: str) -> Any:
        async with self.session.get(self._url(path), headers=self._build_headers()) as r:
            r.raise_for_status()
            return await r.json(content_type=None)

    async def register(self, username: str, latitude: float, longitude: float) -> Tuple[int, Any]:
        return await self._post_json(
            "/register", {"username": username, "position": _position(latitude, longitude)}
        )

    async def send(self, message: str, latitude: float, longitude: float) -> Tuple[int, Any]:
        return await self._post_json(
            "/send", {"message": message, "position": _position(latitude, longitude)}
        )

    async def health(self) -> Any:
        return await self._get_json("/health")

    async def stats(self) -> Any:
        return await self._get_json("/stats")

    async def users(self) -> Any:
        return await self._get_json("/users")

    async def connect(self) -> GeoDispatchSocket:
        """Open the WebSocket presence channel."""
        ws_url = self._url("/ws")
        ws_url = ws_url.with_scheme("wss" if ws_url.scheme == "https" else "ws")
        ws = await self.session.ws_connect(ws_url)
        return GeoDispatchSocket(ws)
