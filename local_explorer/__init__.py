"""Local explorer: saved places and generated multi-day itineraries."""

__version__ = "0.1.0"
