"""Request payload parsing for the HTTP and WebSocket surfaces.

Every parser raises InvalidInputError before anything touches the registry.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from GeoDispatch.dispatch.dispatcher import DispatchRequest
from GeoDispatch.errors import InvalidInputError
from GeoDispatch.presence.registry import Position
from GeoDispatch.utils.geo_utils import is_valid_coordinate

MAX_USERNAME_LENGTH = 64


def _to_float(value: Any, name: str) -> float:
    # bool is an int subclass; "true" is not a coordinate
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{name} must be a number")
    if not isinstance(value, (int, float, str)):
        raise InvalidInputError(f"{name} must be a number")
    try:
        return float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        # JSON integers are unbounded; float() overflows past ~1e308
        raise InvalidInputError(f"{name} must be a number, got {str(value)[:32]!r}")


def parse_position(payload: Dict[str, Any]) -> Position:
    """
    Read a position from ``{"position": {"latitude", "longitude"}}`` or the
    flat ``{"latitude", "longitude"}`` form.
    """
    source = payload.get("position", payload)
    if not isinstance(source, dict):
        raise InvalidInputError("position must be an object")
    if "latitude" not in source or "longitude" not in source:
        raise InvalidInputError("latitude and longitude are required")

    latitude = _to_float(source["latitude"], "latitude")
    longitude = _to_float(source["longitude"], "longitude")
    if not is_valid_coordinate(latitude, longitude):
        raise InvalidInputError(f"Coordinates out of range: ({latitude}, {longitude})")
    return Position(latitude=latitude, longitude=longitude)


def parse_username(payload: Dict[str, Any]) -> str:
    username = payload.get("username")
    if not isinstance(username, str) or not username.strip():
        raise InvalidInputError("username must be a non-empty string")
    username = username.strip()
    if len(username) > MAX_USERNAME_LENGTH:
        raise InvalidInputError(f"username longer than {MAX_USERNAME_LENGTH} characters")
    return username


def _require_object(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise InvalidInputError("payload must be a JSON object")
    return payload


def parse_registration(payload: Any) -> Tuple[str, Position]:
    payload = _require_object(payload)
    return parse_username(payload), parse_position(payload)


def parse_identity(payload: Any) -> Tuple[str, Optional[Position]]:
    """Socket identity event: username plus an optional position refresh."""
    payload = _require_object(payload)
    username = parse_username(payload)

    has_position = "position" in payload or "latitude" in payload or "longitude" in payload
    position = parse_position(payload) if has_position else None
    return username, position


def parse_send(payload: Any, max_message_length: int) -> DispatchRequest:
    payload = _require_object(payload)
    message = payload.get("message")
    if not isinstance(message, str):
        raise InvalidInputError("message must be a string")
    if len(message) > max_message_length:
        raise InvalidInputError(f"message longer than {max_message_length} characters")
    return DispatchRequest(position=parse_position(payload), message=message)
