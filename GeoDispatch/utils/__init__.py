"""Utilities package."""
from GeoDispatch.utils.logger import logger, setup_logging
from GeoDispatch.utils.geo_utils import haversine_distance, is_valid_coordinate

__all__ = [
    "logger",
    "setup_logging",
    "haversine_distance",
    "is_valid_coordinate",
]
