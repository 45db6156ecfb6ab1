"""User profile document shape for the durable profile store.

Only the schema lives here: the store itself (a document database with a
2dsphere index on ``location``) is an external collaborator and plays no
part in matching.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

# Geospatial index declared on the profile collection
LOCATION_INDEX: List[Tuple[str, str]] = [("location", "2dsphere")]


@dataclass
class UserProfile:
    """Persistent profile of a user; ``available`` marks a live connection."""

    username: str
    latitude: float
    longitude: float
    available: bool = False

    def to_document(self) -> Dict[str, Any]:
        """GeoJSON Point document. Note the [longitude, latitude] order."""
        return {
            "username": self.username,
            "location": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
            },
            "available": self.available,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> UserProfile:
        location = doc.get("location") or {}
        if location.get("type", "Point") != "Point":
            raise ValueError(f"Unsupported location type: {location.get('type')}")

        coordinates = location.get("coordinates") or []
        if len(coordinates) != 2:
            raise ValueError(f"Expected [longitude, latitude], got: {coordinates}")

        longitude, latitude = coordinates
        return cls(
            username=doc["username"],
            latitude=float(latitude),
            longitude=float(longitude),
            available=bool(doc.get("available", False)),
        )
