"""GeoDispatch - route a message to the nearest connected user."""

__version__ = "1.0.0"
