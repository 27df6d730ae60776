"""Route group exports."""

from . import geopricing, health

__all__ = ["geopricing", "health"]
