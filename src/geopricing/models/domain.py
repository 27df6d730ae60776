"""Domain models for shop origins, pricing zones and calculation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Sequence, Union

from .adjustments import Adjustment, neutral_adjustment


@dataclass(frozen=True, slots=True)
class Location:
    """Immutable geographic point with the address it was resolved from."""

    lat: float
    lng: float
    address: str = ""
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None

    def cache_key(self) -> str:
        return f"{self.lat:.4f},{self.lng:.4f}"


@dataclass(frozen=True, slots=True)
class ZoneThreshold:
    """Drive-time band built into a shop origin (close / standard / extended)."""

    key: str
    name: str
    max_minutes: Optional[float]
    adjustment_percent: Decimal
    description: str = ""

    def contains(self, minutes: float) -> bool:
        return self.max_minutes is None or minutes <= self.max_minutes

    def range_label(self, lower: Optional[float]) -> str:
        if self.max_minutes is None:
            return f"{lower:g}+ minutes" if lower is not None else "any distance"
        return f"{lower or 0:g}-{self.max_minutes:g} minutes"


DEFAULT_ZONE_THRESHOLDS: tuple[ZoneThreshold, ...] = (
    ZoneThreshold("close", "Close Proximity", 5, Decimal("-5"), "Quick service with minimal travel"),
    ZoneThreshold("standard", "Standard Service", 20, Decimal("0"), "Regular service area"),
    ZoneThreshold("extended", "Extended Service", None, Decimal("10"), "Distant locations requiring extra travel"),
)


@dataclass(slots=True)
class ShopOrigin:
    """A service origin (shop, depot or yard) that crews are dispatched from."""

    id: str
    business_id: str
    name: str
    location: Location
    base_rate_per_unit: Decimal
    currency: str = "CAD"
    minimum_charge: Decimal = Decimal("50")
    round_to: Decimal = Decimal("0.01")
    service_rates: dict[str, Decimal] = field(default_factory=dict)
    service_radius_km: float = 50.0
    zone_thresholds: tuple[ZoneThreshold, ...] = DEFAULT_ZONE_THRESHOLDS
    is_primary: bool = False
    active: bool = True


class ZoneKind(str, Enum):
    RADIUS = "radius"
    DRIVETIME = "drivetime"
    POLYGON = "polygon"
    ZIPCODE = "zipcode"
    CITY = "city"


@dataclass(frozen=True, slots=True)
class RadiusArea:
    center_lat: float
    center_lng: float
    distance: float
    unit: Literal["km", "miles"] = "km"


@dataclass(frozen=True, slots=True)
class DriveTimeArea:
    origin: Location
    max_minutes: float
    traffic_model: str = "best_guess"


@dataclass(frozen=True, slots=True)
class PolygonArea:
    """GeoJSON ``Polygon`` or ``MultiPolygon`` geometry, coordinates in ``[lng, lat]`` order."""

    geometry: Mapping[str, Any]

    @classmethod
    def from_lat_lng(cls, coordinates: Sequence[tuple[float, float]]) -> "PolygonArea":
        ring = [[lng, lat] for lat, lng in coordinates]
        if ring and ring[0] != ring[-1]:
            ring.append(ring[0])
        return cls({"type": "Polygon", "coordinates": [ring]})


@dataclass(frozen=True, slots=True)
class ListArea:
    """Zipcode or city membership list."""

    values: tuple[str, ...]


ZoneArea = Union[RadiusArea, DriveTimeArea, PolygonArea, ListArea]


@dataclass(frozen=True, slots=True)
class SeasonalAdjustment:
    """Inclusive month range; ``start_month > end_month`` wraps across the new year."""

    start_month: int
    end_month: int
    adjustment_value: Decimal

    def contains(self, month: int) -> bool:
        if self.start_month <= self.end_month:
            return self.start_month <= month <= self.end_month
        return month >= self.start_month or month <= self.end_month


@dataclass(frozen=True, slots=True)
class RouteDensity:
    enabled: bool = False
    target_density: float = 0.0
    current_density: Optional[float] = None
    density_bonus: Decimal = Decimal("0")
    sparse_penalty: Decimal = Decimal("0")


@dataclass(slots=True)
class Zone:
    """A pricing zone. Evaluated by priority, the first matching zone wins."""

    id: str
    business_id: str
    name: str
    kind: ZoneKind
    area: ZoneArea
    adjustment: Adjustment
    service_adjustments: dict[str, Decimal] = field(default_factory=dict)
    seasonal_adjustments: tuple[SeasonalAdjustment, ...] = ()
    route_density: Optional[RouteDensity] = None
    minimum_charge: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = None
    priority: int = 0
    active: bool = True
    created_at: Optional[datetime] = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class DriveTimeOptions:
    traffic_model: str = "best_guess"
    avoid_highways: bool = False
    avoid_tolls: bool = False
    use_cache: bool = True


@dataclass(slots=True)
class DriveTimeResult:
    minutes: int
    distance_km: float
    distance_text: str
    duration_text: str
    from_cache: bool = False
    estimated: bool = False
    calculated_at: Optional[datetime] = None


NO_ZONE_REASON = "no zone configured / out of range"


@dataclass(slots=True)
class ZoneMatch:
    """Outcome of zone resolution. ``zone`` is ``None`` for threshold or neutral matches."""

    zone: Optional[Zone]
    adjustment: Adjustment
    reason: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def neutral(cls, reason: str = NO_ZONE_REASON, **metadata: Any) -> "ZoneMatch":
        return cls(zone=None, adjustment=neutral_adjustment(), reason=reason, metadata=dict(metadata))

    @property
    def matched(self) -> bool:
        return self.zone is not None or "threshold" in self.metadata

    @property
    def name(self) -> str:
        if self.zone is not None:
            return self.zone.name
        return self.metadata.get("threshold_name", "Standard Pricing")


@dataclass(frozen=True, slots=True)
class ServiceItem:
    type: str
    area: Decimal
    custom_rate: Optional[Decimal] = None


@dataclass(slots=True)
class ServicePrice:
    type: str
    area: Decimal
    rate: Decimal
    base_price: Decimal
    adjusted_price: Decimal


@dataclass(slots=True)
class PricingResult:
    per_service: list[ServicePrice]
    base_price: Decimal
    adjusted_price: Decimal
    final_price: Decimal
    adjusted_rate: Decimal
    minimum_charge: Decimal
    minimum_applied: bool


@dataclass(slots=True)
class RateTableEntry:
    zone_key: str
    zone_name: str
    drive_time_range: str
    rate: Decimal
    price_for_property: Optional[Decimal]
    is_current: bool


@dataclass(frozen=True, slots=True)
class CalculationOptions:
    use_cache: bool = True
    traffic_model: str = "best_guess"
    avoid_highways: bool = False
    avoid_tolls: bool = False
    preferred_origin_id: Optional[str] = None
    service_date: Optional[date] = None


@dataclass(slots=True)
class CalculationResult:
    id: str
    business_id: str
    origin_id: str
    origin_name: str
    customer_location: Location
    drive_time: DriveTimeResult
    matched_zone: ZoneMatch
    base_rate: Decimal
    adjusted_rate: Decimal
    per_service_pricing: list[ServicePrice]
    base_price: Decimal
    adjusted_price: Decimal
    final_price: Decimal
    minimum_charge: Decimal
    currency: str
    computed_at: datetime
    expires_at: datetime
    rate_table: list[RateTableEntry] = field(default_factory=list)
    explanation: str = ""

    @property
    def estimated(self) -> bool:
        return self.drive_time.estimated


@dataclass(frozen=True, slots=True)
class CalculationError:
    """Typed failure returned instead of a price. Only two codes reach users."""

    code: Literal["address_not_found", "service_unavailable"]
    message: str
