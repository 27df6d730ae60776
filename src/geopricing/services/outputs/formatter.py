"""Customer-facing summaries and JSON serialization for calculation results."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Sequence

from ...models.adjustments import PercentageAdjustment
from ...models.domain import CalculationResult, DriveTimeResult, RateTableEntry, ZoneMatch, ZoneThreshold
from ..pricing.combiner import UNITS_PER_RATE, apply_adjustment


def build_rate_table(
    thresholds: Sequence[ZoneThreshold],
    base_rate: Decimal,
    property_size: Optional[Decimal],
    current_key: Optional[str],
) -> list[RateTableEntry]:
    """One row per drive-time band showing its per-1000 rate and, if known, the property price."""
    entries: list[RateTableEntry] = []
    lower: Optional[float] = None
    for threshold in sorted(thresholds, key=lambda t: float("inf") if t.max_minutes is None else t.max_minutes):
        rate = apply_adjustment(PercentageAdjustment(threshold.adjustment_percent), base_rate)
        price = None
        if property_size:
            price = apply_adjustment(PercentageAdjustment(threshold.adjustment_percent), property_size / UNITS_PER_RATE * base_rate)
        entries.append(
            RateTableEntry(
                zone_key=threshold.key,
                zone_name=threshold.name,
                drive_time_range=threshold.range_label(lower),
                rate=rate,
                price_for_property=price,
                is_current=threshold.key == current_key,
            )
        )
        lower = threshold.max_minutes
    return entries


def explanation_text(match: ZoneMatch, drive_time: DriveTimeResult, origin_label: str) -> str:
    minutes = drive_time.minutes
    approx = "about " if drive_time.estimated else ""
    adjustment = match.adjustment
    if adjustment.is_neutral:
        return (
            f"Your property is {approx}{minutes} minutes from our {origin_label} location, "
            f"within our standard service area. Regular rates apply with no surcharge or discount."
        )
    discount = adjustment.apply(Decimal("100")) < Decimal("100")
    if discount:
        return (
            f"Your property is only {approx}{minutes} minutes from our {origin_label} location, "
            f"so the {match.name} rate ({adjustment.describe()}) applies."
        )
    return (
        f"Your property is {approx}{minutes} minutes from our {origin_label} location. "
        f"The {match.name} rate ({adjustment.describe()}) covers the additional travel time."
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def zone_match_to_dict(match: ZoneMatch) -> dict[str, Any]:
    return {
        "zone_id": match.zone.id if match.zone else None,
        "name": match.name,
        "kind": match.zone.kind.value if match.zone else match.metadata.get("strategy"),
        "adjustment_type": match.adjustment.kind,
        "adjustment_value": str(match.adjustment.value),
        "reason": match.reason,
        "metadata": _jsonable(match.metadata),
    }


def calculation_to_dict(result: CalculationResult) -> dict[str, Any]:
    """Flatten a result into JSON-compatible primitives (money as strings)."""
    return {
        "id": result.id,
        "business_id": result.business_id,
        "origin_id": result.origin_id,
        "origin_name": result.origin_name,
        "customer_location": _jsonable(asdict(result.customer_location)),
        "drive_time": _jsonable(asdict(result.drive_time)),
        "matched_zone": zone_match_to_dict(result.matched_zone),
        "base_rate": str(result.base_rate),
        "adjusted_rate": str(result.adjusted_rate),
        "per_service_pricing": [_jsonable(asdict(item)) for item in result.per_service_pricing],
        "base_price": str(result.base_price),
        "adjusted_price": str(result.adjusted_price),
        "final_price": str(result.final_price),
        "minimum_charge": str(result.minimum_charge),
        "currency": result.currency,
        "estimated": result.estimated,
        "rate_table": [_jsonable(asdict(entry)) for entry in result.rate_table],
        "explanation": result.explanation,
        "computed_at": result.computed_at.isoformat(),
        "expires_at": result.expires_at.isoformat(),
    }
