"""Match Dispatcher - Delivers a message to the nearest connected user."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from GeoDispatch.errors import StaleHandleSendError
from GeoDispatch.presence.registry import Position, PresenceRegistry, User
from GeoDispatch.utils.geo_utils import haversine_distance
from GeoDispatch.utils.logger import logger

# Event emitted to the chosen recipient
MESSAGE_DELIVERED_EVENT = "messageDelivered"


@dataclass(frozen=True)
class DispatchRequest:
    """Sender position plus message payload; lives for one dispatch call."""

    position: Position
    message: str


@dataclass(frozen=True)
class Delivered:
    """Message was handed to the recipient's transport (not necessarily received)."""

    recipient: str
    distance_km: float

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "sent", "recipient": self.recipient}


@dataclass(frozen=True)
class NoRecipient:
    """No connected user was available."""

    reason: str = "No eligible connected user"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "NoRecipient", "detail": self.reason}


DispatchResult = Union[Delivered, NoRecipient]


class MatchDispatcher:
    """
    Routes each message to exactly one recipient: the nearest eligible user.

    Fire-and-forget: no acknowledgment, no retry, no fallback recipient.
    The send happens after the registry lock is released.
    """

    def __init__(self, registry: PresenceRegistry, send_timeout: Optional[float] = 5.0) -> None:
        self._registry = registry
        self._send_timeout = send_timeout

        # Metrics
        self._total_dispatches: int = 0
        self._delivered: int = 0
        self._no_recipient: int = 0
        self._stale_sends: int = 0

    async def dispatch(self, position: Position, message: str) -> DispatchResult:
        return await self.dispatch_request(DispatchRequest(position=position, message=message))

    async def dispatch_request(self, request: DispatchRequest) -> DispatchResult:
        self._total_dispatches += 1

        recipient = await self._registry.nearest_eligible(request.position)
        if recipient is None:
            self._no_recipient += 1
            logger.info(
                f"No recipient for message from "
                f"({request.position.latitude:.6f}, {request.position.longitude:.6f})"
            )
            return NoRecipient()

        distance_km = haversine_distance(
            request.position.latitude,
            request.position.longitude,
            recipient.position.latitude,
            recipient.position.longitude,
        )

        try:
            await self._send(recipient, request)
        except StaleHandleSendError as e:
            self._stale_sends += 1
            logger.warning(f"[!] {e}")

        self._delivered += 1
        logger.info(f"[>] Message sent to nearest user: {recipient.username} ({distance_km:.3f} km)")
        return Delivered(recipient=recipient.username, distance_km=distance_km)

    async def _send(self, recipient: User, request: DispatchRequest) -> None:
        """Hand the event to the recipient's connection, normalizing transport failures."""
        payload = {
            "message": request.message,
            "senderPosition": request.position.to_dict(),
        }
        try:
            await asyncio.wait_for(
                recipient.connection_handle.send_event(MESSAGE_DELIVERED_EVENT, payload),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            raise StaleHandleSendError(recipient.username, "send timed out")
        except (ConnectionError, RuntimeError) as e:
            raise StaleHandleSendError(recipient.username, str(e) or type(e).__name__)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_dispatches": self._total_dispatches,
            "delivered": self._delivered,
            "no_recipient": self._no_recipient,
            "stale_sends": self._stale_sends,
        }
