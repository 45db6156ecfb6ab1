"""GeoDispatch API Server - HTTP endpoints plus the WebSocket presence channel."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Set

from aiohttp import WSMsgType, web

from GeoDispatch.api.connection import ClientConnection
from GeoDispatch.api.payloads import parse_identity, parse_registration, parse_send
from GeoDispatch.dispatch.dispatcher import Delivered, MatchDispatcher
from GeoDispatch.errors import DuplicateUserError, InvalidInputError
from GeoDispatch.presence.lifecycle import ConnectionLifecycleHandler
from GeoDispatch.presence.registry import PresenceRegistry
from GeoDispatch.utils.logger import logger
import GeoDispatch.config as AppConfig

# Inbound socket event names; registerUser is the older client's name
REGISTER_EVENTS = ("registerIdentity", "registerUser")
SEND_EVENT = "sendMessage"
IDENTITY_RESULT_EVENT = "identityResult"
SEND_RESULT_EVENT = "sendResult"


def _error_response(error: str, detail: str, status: int) -> web.Response:
    return web.json_response({"error": error, "detail": detail}, status=status)


def make_cors_middleware(origins: List[str]):
    """Permissive CORS: '*' allows any origin, otherwise echo listed origins."""
    allow_all = "*" in origins

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        if request.method == "OPTIONS":
            response = web.Response(status=204)
        else:
            response = await handler(request)

        if response.prepared:
            # WebSocket upgrade already sent its headers
            return response

        origin = request.headers.get("Origin")
        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin and origin in origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    return cors_middleware


class GeoDispatchServer:
    """
    Main API server for GeoDispatch.

    Provides endpoints for:
    - POST /register - Create a user identity with a position
    - POST /send     - Deliver a message to the nearest connected user
    - GET  /ws       - WebSocket channel (registerIdentity, sendMessage, messageDelivered)
    - GET  /health   - Health check
    - GET  /stats    - Registry, connection and dispatch statistics
    - GET  /users    - Registered users as profile documents
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        lifecycle: ConnectionLifecycleHandler,
        dispatcher: MatchDispatcher,
        host: Optional[str] = None,
        port: Optional[int] = None,
        cors_origins: Optional[List[str]] = None,
        max_message_length: Optional[int] = None,
        heartbeat: Optional[float] = None,
    ):
        self.host = host or AppConfig.geodispatch_host
        self.port = port or AppConfig.geodispatch_port
        self.cors_origins = cors_origins if cors_origins is not None else AppConfig.cors_origins
        self.max_message_length = max_message_length or AppConfig.max_message_length
        self.heartbeat = heartbeat if heartbeat is not None else AppConfig.heartbeat_seconds
        self._registry = registry
        self._lifecycle = lifecycle
        self._dispatcher = dispatcher
        self._connections: Set[ClientConnection] = set()
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def _read_json(self, request: web.Request) -> Any:
        try:
            return await request.json()
        except ValueError:
            # JSONDecodeError or UnicodeDecodeError
            raise InvalidInputError("Body is not valid JSON")

    async def handle_register(self, request: web.Request) -> web.Response:
        """
        Register a user.

        Expected payload:
        {"username": "alice", "position": {"latitude": 0.0, "longitude": 0.0}}
        """
        try:
            username, position = parse_registration(await self._read_json(request))
            await self._registry.register(username, position)
            return web.json_response({"status": "created", "username": username}, status=201)
        except InvalidInputError as e:
            logger.debug(f"Rejected registration: {e}")
            return _error_response(e.code, str(e), status=400)
        except DuplicateUserError as e:
            return _error_response(e.code, str(e), status=409)
        except Exception as e:
            logger.error(f"Error processing registration: {e}")
            return _error_response("InternalError", "Internal Error", status=500)

    async def handle_send(self, request: web.Request) -> web.Response:
        """
        Send a message to the nearest connected user.

        Expected payload:
        {"message": "...", "position": {"latitude": 0.0, "longitude": 0.0}}
        """
        try:
            dispatch_request = parse_send(await self._read_json(request), self.max_message_length)
        except InvalidInputError as e:
            logger.debug(f"Rejected send request: {e}")
            return _error_response(e.code, str(e), status=400)

        try:
            result = await self._dispatcher.dispatch_request(dispatch_request)
        except Exception as e:
            logger.error(f"Error dispatching message: {e}")
            return _error_response("InternalError", "Internal Error", status=500)

        status = 200 if isinstance(result, Delivered) else 404
        return web.json_response(result.to_dict(), status=status)

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Persistent connection: open = connect, close = disconnect."""
        ws = web.WebSocketResponse(heartbeat=self.heartbeat or None)
        await ws.prepare(request)

        connection = ClientConnection(ws, remote=request.remote)
        self._connections.add(connection)
        await self._lifecycle.on_connect(connection)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    # One bad frame must not close the socket and drop the identity
                    try:
                        await self._handle_frame(connection, msg.data)
                    except Exception as e:
                        logger.exception(f"Error handling frame from {connection}: {e}")
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"WebSocket error on {connection}: {ws.exception()}")
        finally:
            self._connections.discard(connection)
            await self._lifecycle.on_disconnect(connection)

        return ws

    async def _handle_frame(self, connection: ClientConnection, raw: str) -> None:
        """Route one JSON frame: {"event": name, "data": {...}}."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON frame from {connection}")
            return

        if not isinstance(frame, dict):
            logger.warning(f"Ignoring malformed frame from {connection}")
            return

        event = frame.get("event")
        data = frame.get("data") or {}

        if event in REGISTER_EVENTS:
            await self._on_register_frame(connection, data)
        elif event == SEND_EVENT:
            await self._on_send_frame(connection, data)
        else:
            logger.debug(f"Ignoring unknown event {event!r} from {connection}")

    async def _on_register_frame(self, connection: ClientConnection, data: Any) -> None:
        try:
            username, position = parse_identity(data)
        except InvalidInputError as e:
            logger.warning(f"Invalid identity frame from {connection}: {e}")
            await self._reply(connection, IDENTITY_RESULT_EVENT, {"status": "invalid", "detail": str(e)})
            return

        bound = await self._lifecycle.on_register_identity(connection, username, position)
        await self._reply(
            connection,
            IDENTITY_RESULT_EVENT,
            {"status": "bound" if bound else "unknown", "username": username},
        )

    async def _on_send_frame(self, connection: ClientConnection, data: Any) -> None:
        try:
            dispatch_request = parse_send(data, self.max_message_length)
        except InvalidInputError as e:
            await self._reply(connection, SEND_RESULT_EVENT, {"error": e.code, "detail": str(e)})
            return

        logger.debug(
            f"Message from ({dispatch_request.position.latitude:.6f}, "
            f"{dispatch_request.position.longitude:.6f}) via {connection}"
        )
        result = await self._dispatcher.dispatch_request(dispatch_request)
        await self._reply(connection, SEND_RESULT_EVENT, result.to_dict())

    async def _reply(self, connection: ClientConnection, event: str, data: Dict[str, Any]) -> None:
        try:
            await connection.send_event(event, data)
        except ConnectionError as e:
            logger.debug(f"Reply {event} to {connection} dropped: {e}")

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "healthy"})

    async def handle_stats(self, request: web.Request) -> web.Response:
        """Registry, connection and dispatch statistics endpoint."""
        try:
            stats = {
                "registry": await self._registry.get_stats(),
                "connections": {
                    "open": len(self._connections),
                    **self._lifecycle.get_stats(),
                },
                "dispatch": self._dispatcher.get_stats(),
            }
            return web.json_response(stats)
        except Exception as e:
            logger.error(f"Error getting stats: {e}")
            return web.json_response({"error": str(e)}, status=500)

    async def handle_users(self, request: web.Request) -> web.Response:
        """Every registered user as a profile document."""
        users = await self._registry.snapshot()
        documents = [user.to_profile().to_document() for user in users]
        return web.json_response({"count": len(documents), "users": documents})

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[make_cors_middleware(self.cors_origins)])
        app.router.add_post("/register", self.handle_register)
        app.router.add_post("/send", self.handle_send)
        app.router.add_get("/ws", self.handle_websocket)
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/stats", self.handle_stats)
        app.router.add_get("/users", self.handle_users)
        return app

    async def start(self) -> None:
        """Start the API server."""
        self._app = self.build_app()

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        logger.info(f"GeoDispatch server started on http://{self.host}:{self.port}")
        logger.debug("  POST /register - Register a user with a position")
        logger.debug("  POST /send     - Send a message to the nearest connected user")
        logger.debug("  GET  /ws       - WebSocket presence channel")
        logger.debug("  GET  /health   - Health check")
        logger.debug("  GET  /stats    - Statistics")
        logger.debug("  GET  /users    - Registered users")

    async def close_connections(self) -> None:
        for connection in list(self._connections):
            await connection.close()

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        await self.close_connections()

        if self._site:
            await self._site.stop()

        if self._runner:
            await self._runner.cleanup()

        logger.info("GeoDispatch server stopped")
