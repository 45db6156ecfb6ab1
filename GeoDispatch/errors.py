"""Error taxonomy shared by the registry, dispatcher and API layer."""
from __future__ import annotations


class GeoDispatchError(Exception):
    """Base class for all GeoDispatch errors."""

    code: str = "GeoDispatchError"


class InvalidInputError(GeoDispatchError):
    """Request payload is missing fields or carries non-numeric / out of range values."""

    code = "InvalidInput"


class DuplicateUserError(GeoDispatchError):
    """Username is already registered; the existing entry is left untouched."""

    code = "DuplicateUser"

    def __init__(self, username: str) -> None:
        super().__init__(f"User already registered: {username}")
        self.username = username


class UnknownUserError(GeoDispatchError):
    """Operation references a username that was never registered."""

    code = "UnknownUser"

    def __init__(self, username: str) -> None:
        super().__init__(f"Unknown user: {username}")
        self.username = username


class StaleHandleSendError(GeoDispatchError):
    """Transport send to a connection that went away between selection and send."""

    code = "StaleHandleSend"

    def __init__(self, username: str, reason: str) -> None:
        super().__init__(f"Send to {username} failed: {reason}")
        self.username = username
        self.reason = reason
