"""Membership predicates for each zone kind."""

from __future__ import annotations

import logging

from ...models.domain import DriveTimeArea, ListArea, PolygonArea, RadiusArea, Zone, ZoneKind
from ..geospatial import haversine_km, point_in_geometry, to_km
from .base import MatchContext, PredicateResult, ZoneStrategy

logger = logging.getLogger(__name__)


def normalize_postal_code(value: str) -> str:
    return "".join(value.split()).casefold()


def normalize_city(value: str) -> str:
    return " ".join(value.split()).casefold()


class RadiusZoneStrategy(ZoneStrategy):
    kind = ZoneKind.RADIUS

    async def matches(self, zone: Zone, context: MatchContext) -> PredicateResult:
        area = zone.area
        if not isinstance(area, RadiusArea):
            return PredicateResult(False, {"error": "radius zone without radius data"})
        distance_km = haversine_km(area.center_lat, area.center_lng, context.customer.lat, context.customer.lng)
        limit_km = to_km(area.distance, area.unit)
        return PredicateResult(
            distance_km <= limit_km,
            {"distance_km": round(distance_km, 3), "radius_km": round(limit_km, 3)},
        )


class DriveTimeZoneStrategy(ZoneStrategy):
    kind = ZoneKind.DRIVETIME

    async def matches(self, zone: Zone, context: MatchContext) -> PredicateResult:
        area = zone.area
        if not isinstance(area, DriveTimeArea):
            return PredicateResult(False, {"error": "drive-time zone without drive-time data"})
        if context.drive_time_resolver is None:
            logger.warning(f"Skipping drive-time zone {zone.id}: no drive-time resolver available")
            return PredicateResult(False, {"error": "drive-time resolver unavailable"})
        drive_time = await context.drive_time_resolver.compute_drive_time(
            area.origin,
            context.customer,
            context.drive_time_options,
        )
        return PredicateResult(
            drive_time.minutes <= area.max_minutes,
            {
                "drive_time_minutes": drive_time.minutes,
                "max_minutes": area.max_minutes,
                "estimated": drive_time.estimated,
                "from_cache": drive_time.from_cache,
            },
        )


class PolygonZoneStrategy(ZoneStrategy):
    kind = ZoneKind.POLYGON

    async def matches(self, zone: Zone, context: MatchContext) -> PredicateResult:
        area = zone.area
        if not isinstance(area, PolygonArea):
            return PredicateResult(False, {"error": "polygon zone without geometry"})
        try:
            inside = point_in_geometry(context.customer.lat, context.customer.lng, area.geometry)
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning(f"Invalid geometry on zone {zone.id}: {exc}")
            return PredicateResult(False, {"error": "invalid geometry"})
        return PredicateResult(inside)


class ZipcodeZoneStrategy(ZoneStrategy):
    kind = ZoneKind.ZIPCODE

    async def matches(self, zone: Zone, context: MatchContext) -> PredicateResult:
        postal_code = context.customer.postal_code
        if not postal_code or not isinstance(zone.area, ListArea):
            return PredicateResult(False)
        wanted = normalize_postal_code(postal_code)
        members = {normalize_postal_code(value) for value in zone.area.values}
        return PredicateResult(wanted in members, {"postal_code": postal_code})


class CityZoneStrategy(ZoneStrategy):
    kind = ZoneKind.CITY

    async def matches(self, zone: Zone, context: MatchContext) -> PredicateResult:
        city = context.customer.city
        if not city or not isinstance(zone.area, ListArea):
            return PredicateResult(False)
        wanted = normalize_city(city)
        members = {normalize_city(value) for value in zone.area.values}
        return PredicateResult(wanted in members, {"city": city})
