"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Any, Mapping

from shapely.geometry import Point, shape

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.609344
DISTANCE_UNITS = ("km", "miles")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def to_km(distance: float, unit: str) -> float:
    if unit == "miles":
        return distance * KM_PER_MILE
    if unit == "km":
        return distance
    raise ValueError(f"Unknown distance unit '{unit}'.")


def point_in_geometry(lat: float, lon: float, geometry: Mapping[str, Any]) -> bool:
    """Return True if the point lies inside or on the boundary of a GeoJSON geometry."""

    return shape(geometry).covers(Point(lon, lat))
