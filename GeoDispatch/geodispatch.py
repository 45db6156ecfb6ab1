"""GeoDispatch - Nearest connected user message dispatch.

Main entry point for the application. Orchestrates:
- Presence registry (registered users, positions, live connections)
- Connection lifecycle handling for the WebSocket channel
- Nearest-neighbor message dispatch
- HTTP + WebSocket server
"""
from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

import GeoDispatch.config as AppConfig
from GeoDispatch import __version__
from GeoDispatch.utils.logger import logger, setup_logging
from GeoDispatch.presence.registry import PresenceRegistry
from GeoDispatch.presence.lifecycle import ConnectionLifecycleHandler
from GeoDispatch.dispatch.dispatcher import MatchDispatcher
from GeoDispatch.api.server import GeoDispatchServer


class GeoDispatchApp:
    """
    Main application orchestrator.

    Lifecycle:
    1. Create the presence registry (owned here, passed to every component)
    2. Wire the lifecycle handler and dispatcher to it
    3. Start the HTTP/WebSocket server
    4. Handle graceful shutdown
    """

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        self.registry = PresenceRegistry()
        self.lifecycle = ConnectionLifecycleHandler(self.registry)
        self.dispatcher = MatchDispatcher(self.registry, send_timeout=AppConfig.send_timeout_seconds)
        self._host = host
        self._port = port
        self._server: Optional[GeoDispatchServer] = None
        self._shutdown_event: asyncio.Event = asyncio.Event()

    async def start(self) -> None:
        """Start all application components."""
        logger.info("=" * 60)
        logger.info(f"GeoDispatch v{__version__} - Nearest user message dispatch")
        logger.info("=" * 60)

        logger.info("Starting API server...")
        self._server = GeoDispatchServer(
            self.registry,
            self.lifecycle,
            self.dispatcher,
            host=self._host,
            port=self._port,
        )
        await self._server.start()

        logger.info("-" * 60)
        logger.info("GeoDispatch started successfully")
        logger.info(f"  Server: http://{self._server.host}:{self._server.port}")
        logger.info(f"  WebSocket: ws://{self._server.host}:{self._server.port}/ws")
        logger.info(f"  Send timeout: {AppConfig.send_timeout_seconds}s")
        logger.info(f"  CORS origins: {', '.join(self._server.cors_origins)}")
        logger.info("-" * 60)

    async def run(self) -> None:
        """Run the application until shutdown signal."""
        await self.start()

        await self._shutdown_event.wait()

        await self.shutdown()

    async def shutdown(self) -> None:
        """Graceful shutdown of all components."""
        logger.info("Shutting down GeoDispatch...")

        if self._server:
            await self._server.shutdown()
            self._server = None

        stats = self.dispatcher.get_stats()
        logger.info(
            f"GeoDispatch shutdown complete. "
            f"Dispatches: {stats['total_dispatches']}, "
            f"Delivered: {stats['delivered']}, "
            f"No recipient: {stats['no_recipient']}"
        )

    def trigger_shutdown(self) -> None:
        """Trigger application shutdown (called from signal handler)."""
        logger.info("Shutdown signal received")
        self._shutdown_event.set()


def setup_signal_handlers(app: GeoDispatchApp, loop: asyncio.AbstractEventLoop) -> None:
    """Setup signal handlers for graceful shutdown."""
    if sys.platform == "win32":
        # Windows doesn't support add_signal_handler
        def handler(signum, frame):
            loop.call_soon_threadsafe(app.trigger_shutdown)

        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)
    else:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, app.trigger_shutdown)


async def main() -> None:
    """Main entry point."""
    setup_logging(
        AppConfig.log_level,
        {"to_file": AppConfig.log_file, "show_function": True},
    )

    app = GeoDispatchApp()

    loop = asyncio.get_running_loop()
    setup_signal_handlers(app, loop)

    try:
        await app.run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        await app.shutdown()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        raise


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
