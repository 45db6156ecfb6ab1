"""Connection Lifecycle Handler - Applies transport connect/register/disconnect events to the registry."""
from __future__ import annotations

from typing import Any, Dict, Hashable, Optional

from GeoDispatch.errors import UnknownUserError
from GeoDispatch.presence.registry import Position, PresenceRegistry
from GeoDispatch.utils.logger import logger


class ConnectionLifecycleHandler:
    """
    Bridges transport events to PresenceRegistry mutations.

    Events for a single connection arrive in transport order
    (connect -> registerIdentity -> disconnect). None of them is fatal.
    """

    def __init__(self, registry: PresenceRegistry) -> None:
        self._registry = registry

        # Metrics
        self._connects: int = 0
        self._identities_bound: int = 0
        self._identities_rejected: int = 0
        self._disconnects: int = 0

    async def on_connect(self, handle: Hashable) -> None:
        """A connection opened; it has no identity until registerIdentity."""
        self._connects += 1
        logger.debug(f"New connection: {handle}")

    async def on_register_identity(
        self,
        handle: Hashable,
        username: str,
        position: Optional[Position] = None,
    ) -> bool:
        """
        Associate a connection with a registered username.

        Re-registering an already bound username just moves it to this handle.
        When position is given the user's last-known position is refreshed.

        Returns:
            True if bound, False if the username is unknown (event dropped)
        """
        try:
            await self._registry.bind_connection(username, handle, position)
        except UnknownUserError:
            self._identities_rejected += 1
            logger.warning(f"Identity binding dropped: {username} is not registered (connection {handle})")
            return False

        self._identities_bound += 1
        logger.info(f"User online: {username} (connection {handle})")
        return True

    async def on_disconnect(self, handle: Hashable) -> Optional[str]:
        """Clear the identity bound to handle. Safe to call repeatedly."""
        self._disconnects += 1
        username = await self._registry.unbind_connection(handle)
        if username:
            logger.info(f"User offline: {username} (connection {handle})")
        else:
            logger.debug(f"Connection closed without identity: {handle}")
        return username

    def get_stats(self) -> Dict[str, Any]:
        return {
            "connects": self._connects,
            "identities_bound": self._identities_bound,
            "identities_rejected": self._identities_rejected,
            "disconnects": self._disconnects,
        }
