"""Store interfaces, record mapping and in-memory implementations.

Records are the plain dict rows shared by the JSON seed file and the Supabase
tables; ``origin_from_record`` / ``zone_from_record`` turn them into domain
objects.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol

from ..config import settings
from ..models.adjustments import make_adjustment, to_decimal
from ..models.domain import (
    DEFAULT_ZONE_THRESHOLDS,
    CalculationResult,
    DriveTimeArea,
    ListArea,
    Location,
    PolygonArea,
    RadiusArea,
    RouteDensity,
    SeasonalAdjustment,
    ShopOrigin,
    Zone,
    ZoneArea,
    ZoneKind,
    ZoneThreshold,
)
from ..services.geospatial import DISTANCE_UNITS
from ..services.outputs.formatter import calculation_to_dict

logger = logging.getLogger(__name__)


class ShopOriginStore(Protocol):
    async def list_origins(self, business_id: str) -> list[ShopOrigin]: ...


class ZoneStore(Protocol):
    async def list_zones(self, business_id: str) -> list[Zone]: ...


class CalculationStore(Protocol):
    async def save(self, result: CalculationResult) -> None: ...

    async def get(self, calculation_id: str) -> Optional[dict[str, Any]]: ...


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def location_from_record(record: Mapping[str, Any]) -> Location:
    return Location(
        lat=float(record["lat"]),
        lng=float(record["lng"]),
        address=record.get("address") or "",
        city=record.get("city"),
        region=record.get("region"),
        postal_code=record.get("postal_code"),
    )


def threshold_from_record(record: Mapping[str, Any]) -> ZoneThreshold:
    max_minutes = record.get("max_minutes")
    return ZoneThreshold(
        key=record["key"],
        name=record.get("name") or record["key"].title(),
        max_minutes=None if max_minutes is None else float(max_minutes),
        adjustment_percent=to_decimal(record.get("adjustment_percent", 0)),
        description=record.get("description") or "",
    )


def origin_from_record(record: Mapping[str, Any]) -> ShopOrigin:
    location = record.get("location") or record
    thresholds = record.get("zone_thresholds")
    return ShopOrigin(
        id=str(record["id"]),
        business_id=str(record["business_id"]),
        name=record["name"],
        location=location_from_record(location),
        base_rate_per_unit=to_decimal(record["base_rate_per_unit"]),
        currency=record.get("currency") or "CAD",
        minimum_charge=to_decimal(record.get("minimum_charge", 50)),
        round_to=to_decimal(record.get("round_to", "0.01")),
        service_rates={key: to_decimal(value) for key, value in (record.get("service_rates") or {}).items()},
        service_radius_km=float(record.get("service_radius_km") or settings.default_origin_radius_km),
        zone_thresholds=(
            tuple(threshold_from_record(item) for item in thresholds) if thresholds else DEFAULT_ZONE_THRESHOLDS
        ),
        is_primary=bool(record.get("is_primary", False)),
        active=bool(record.get("active", True)),
    )


def area_from_record(kind: ZoneKind, area: Mapping[str, Any]) -> ZoneArea:
    match kind:
        case ZoneKind.RADIUS:
            unit = area.get("unit", "km")
            if unit not in DISTANCE_UNITS:
                raise ValueError(f"Unknown distance unit '{unit}'.")
            return RadiusArea(
                center_lat=float(area["center_lat"]),
                center_lng=float(area["center_lng"]),
                distance=float(area["distance"]),
                unit=unit,
            )
        case ZoneKind.DRIVETIME:
            return DriveTimeArea(
                origin=location_from_record(area["origin"]),
                max_minutes=float(area["max_minutes"]),
                traffic_model=area.get("traffic_model", "best_guess"),
            )
        case ZoneKind.POLYGON:
            if "geometry" in area:
                return PolygonArea(area["geometry"])
            return PolygonArea.from_lat_lng([tuple(point) for point in area["coordinates"]])
        case ZoneKind.ZIPCODE | ZoneKind.CITY:
            return ListArea(tuple(str(value) for value in area.get("values", ())))
    raise ValueError(f"Unsupported zone kind '{kind}'.")


def zone_from_record(record: Mapping[str, Any]) -> Zone:
    kind = ZoneKind(record["kind"])
    density = record.get("route_density")
    return Zone(
        id=str(record["id"]),
        business_id=str(record["business_id"]),
        name=record["name"],
        kind=kind,
        area=area_from_record(kind, record.get("area") or {}),
        adjustment=make_adjustment(record.get("adjustment_type", "percentage"), record.get("adjustment_value", 0)),
        service_adjustments={
            key: to_decimal(value) for key, value in (record.get("service_adjustments") or {}).items()
        },
        seasonal_adjustments=tuple(
            SeasonalAdjustment(
                start_month=int(item["start_month"]),
                end_month=int(item["end_month"]),
                adjustment_value=to_decimal(item["adjustment_value"]),
            )
            for item in record.get("seasonal_adjustments") or ()
        ),
        route_density=(
            RouteDensity(
                enabled=bool(density.get("enabled", False)),
                target_density=float(density.get("target_density", 0)),
                current_density=(
                    None if density.get("current_density") is None else float(density["current_density"])
                ),
                density_bonus=to_decimal(density.get("density_bonus", 0)),
                sparse_penalty=to_decimal(density.get("sparse_penalty", 0)),
            )
            if density
            else None
        ),
        minimum_charge=_optional_decimal(record.get("minimum_charge")),
        maximum_discount=_optional_decimal(record.get("maximum_discount")),
        priority=int(record.get("priority", 0)),
        active=bool(record.get("active", True)),
        created_at=_parse_datetime(record.get("created_at")),
        description=record.get("description") or "",
    )


class InMemoryOriginStore:
    def __init__(self, origins: Iterable[ShopOrigin] = ()) -> None:
        self._origins = list(origins)

    def add(self, origin: ShopOrigin) -> None:
        self._origins.append(origin)

    async def list_origins(self, business_id: str) -> list[ShopOrigin]:
        return [origin for origin in self._origins if origin.business_id == business_id]


class InMemoryZoneStore:
    def __init__(self, zones: Iterable[Zone] = ()) -> None:
        self._zones = list(zones)

    def add(self, zone: Zone) -> None:
        self._zones.append(zone)

    async def list_zones(self, business_id: str) -> list[Zone]:
        return [zone for zone in self._zones if zone.business_id == business_id]


class InMemoryCalculationStore:
    def __init__(self) -> None:
        self._results: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    async def save(self, result: CalculationResult) -> None:
        with self._lock:
            self._results[result.id] = calculation_to_dict(result)

    async def get(self, calculation_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._results.get(calculation_id)


def zones_from_records(records: Iterable[Mapping[str, Any]]) -> list[Zone]:
    """Map zone rows, skipping the ones that cannot be read."""
    zones = []
    for record in records:
        try:
            zones.append(zone_from_record(record))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed pricing zone {record.get('id')}: {e}")
    return zones


def load_seed(path: Path | None = None) -> tuple[list[ShopOrigin], list[Zone]]:
    """Read ``{"origins": [...], "zones": [...]}`` from the seed file, empty when it is missing."""
    seed_path = path or settings.seed_file
    if not seed_path.exists():
        logger.warning(f"Seed file {seed_path} not found; starting without origins or zones")
        return [], []
    with seed_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    origins = [origin_from_record(record) for record in payload.get("origins", [])]
    zones = zones_from_records(payload.get("zones", []))
    logger.info(f"Loaded {len(origins)} origin(s) and {len(zones)} zone(s) from {seed_path}")
    return origins, zones
