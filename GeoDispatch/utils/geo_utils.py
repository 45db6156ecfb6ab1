"""Geographic utility functions for distance calculations."""
from math import radians, sin, cos, sqrt, atan2, isfinite, nan

# Mean Earth radius (spherical approximation)
EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points in kilometers using Haversine formula.

    Args:
        lat1, lon1: First point coordinates in degrees (latitude, longitude)
        lat2, lon2: Second point coordinates in degrees (latitude, longitude)

    Returns:
        Distance in kilometers, or NaN if any input is NaN or infinite.
        Range checking of the inputs is left to the caller.
    """
    if not (isfinite(lat1) and isfinite(lon1) and isfinite(lat2) and isfinite(lon2)):
        return nan

    phi1, phi2 = radians(lat1), radians(lat2)
    delta_phi = radians(lat2 - lat1)
    delta_lambda = radians(lon2 - lon1)

    a = sin(delta_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(delta_lambda / 2) ** 2
    # Rounding can push a just outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Check latitude is within [-90, 90] and longitude within [-180, 180]."""
    if not (isfinite(latitude) and isfinite(longitude)):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0
