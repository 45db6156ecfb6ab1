"""Presence Registry - In-memory map of registered users, positions and live connections."""
from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Hashable, List, Optional

from GeoDispatch.errors import DuplicateUserError, UnknownUserError
from GeoDispatch.models.profile import UserProfile
from GeoDispatch.utils.geo_utils import haversine_distance
from GeoDispatch.utils.logger import logger


@dataclass(frozen=True)
class Position:
    """Latitude/longitude pair in degrees."""

    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass
class User:
    """
    Registered user.

    connection_handle is an opaque, hashable reference to the user's live
    transport connection. None while the user is offline.
    """

    username: str
    position: Position
    connection_handle: Optional[Hashable] = None
    registered_at: float = field(default_factory=time.time)
    # Registration order, used to break distance ties
    sequence: int = 0

    @property
    def is_connected(self) -> bool:
        return self.connection_handle is not None

    def to_profile(self) -> UserProfile:
        return UserProfile(
            username=self.username,
            latitude=self.position.latitude,
            longitude=self.position.longitude,
            available=self.is_connected,
        )


class PresenceRegistry:
    """
    Authoritative owner of User records and their connection handles.

    Features:
    - Usernames are unique; duplicate registration is rejected
    - Handle index for O(1) unbind on disconnect
    - Nearest-eligible lookup over connected users only
    - Single asyncio.Lock serializes every operation; no I/O under the lock
    """

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}  # insertion order == registration order
        self._by_handle: Dict[Hashable, str] = {}  # handle -> username
        self._registry_lock: asyncio.Lock = asyncio.Lock()
        self._sequence = itertools.count()

        # Stats
        self._total_registrations: int = 0
        self._rejected_registrations: int = 0
        self._total_binds: int = 0
        self._total_unbinds: int = 0

    async def register(self, username: str, position: Position) -> User:
        """
        Create a new user with no connection.

        Raises:
            DuplicateUserError: username already registered (existing entry untouched)
        """
        async with self._registry_lock:
            if username in self._users:
                self._rejected_registrations += 1
                logger.warning(f"Duplicate registration rejected: {username}")
                raise DuplicateUserError(username)

            user = User(username=username, position=position, sequence=next(self._sequence))
            self._users[username] = user
            self._total_registrations += 1

            logger.info(
                f"User registered: {username} at ({position.latitude:.6f}, {position.longitude:.6f}) "
                f"(registered: {len(self._users)})"
            )
            return replace(user)

    async def bind_connection(
        self, username: str, handle: Hashable, position: Optional[Position] = None
    ) -> None:
        """
        Attach a live connection to a registered user, replacing any previous one.

        A handle already bound to another username is moved, so that one handle
        never identifies two users. When position is given it is stored in the
        same critical section, so no lookup sees the new handle with the old position.

        Raises:
            UnknownUserError: username was never registered
        """
        async with self._registry_lock:
            user = self._users.get(username)
            if user is None:
                raise UnknownUserError(username)

            previous_owner = self._by_handle.get(handle)
            if previous_owner is not None and previous_owner != username:
                self._users[previous_owner].connection_handle = None
                logger.debug(f"Connection moved from {previous_owner} to {username}")

            if user.connection_handle is not None and user.connection_handle != handle:
                self._by_handle.pop(user.connection_handle, None)
                logger.debug(f"Replacing previous connection of {username}")

            if position is not None:
                user.position = position
            user.connection_handle = handle
            self._by_handle[handle] = username
            self._total_binds += 1

    async def unbind_connection(self, handle: Hashable) -> Optional[str]:
        """
        Clear the user holding this handle.

        Returns the affected username, or None when no user holds the handle.
        Never raises; a disconnect may arrive before any identity was bound.
        """
        async with self._registry_lock:
            username = self._by_handle.pop(handle, None)
            if username is None:
                return None

            user = self._users.get(username)
            if user is not None and user.connection_handle == handle:
                user.connection_handle = None
                self._total_unbinds += 1
            return username

    async def update_position(self, username: str, position: Position) -> None:
        """Refresh the last-known position of a registered user."""
        async with self._registry_lock:
            user = self._users.get(username)
            if user is None:
                raise UnknownUserError(username)
            user.position = position

    async def nearest_eligible(self, position: Position) -> Optional[User]:
        """
        Find the connected user closest to position.

        Ties resolve to the earliest registration. Returns a copy, so the
        caller can use the handle after the lock is released.
        """
        async with self._registry_lock:
            nearest: Optional[User] = None
            min_distance = float("inf")

            for user in self._users.values():
                if user.connection_handle is None:
                    continue
                distance = haversine_distance(
                    position.latitude,
                    position.longitude,
                    user.position.latitude,
                    user.position.longitude,
                )
                # Strict comparison keeps the first-registered user on ties
                if distance < min_distance:
                    nearest = user
                    min_distance = distance

            return replace(nearest) if nearest is not None else None

    async def get(self, username: str) -> Optional[User]:
        async with self._registry_lock:
            user = self._users.get(username)
            return replace(user) if user is not None else None

    async def snapshot(self) -> List[User]:
        """Copies of every user in registration order."""
        async with self._registry_lock:
            return [replace(user) for user in self._users.values()]

    def count(self) -> int:
        return len(self._users)

    def connected_count(self) -> int:
        return len(self._by_handle)

    async def get_stats(self) -> Dict[str, Any]:
        async with self._registry_lock:
            return {
                "registered": len(self._users),
                "connected": len(self._by_handle),
                "total_registrations": self._total_registrations,
                "rejected_registrations": self._rejected_registrations,
                "total_binds": self._total_binds,
                "total_unbinds": self._total_unbinds,
            }
