"""Zone resolution: pick the single best-matching zone for a customer."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from ...models.adjustments import make_adjustment, to_decimal
from ...models.domain import (
    NO_ZONE_REASON,
    DriveTimeOptions,
    DriveTimeResult,
    Location,
    RouteDensity,
    SeasonalAdjustment,
    Zone,
    ZoneMatch,
    ZoneThreshold,
)
from ..routing.drive_time import DriveTimeResolver
from .base import MatchContext
from .dispatcher import get_strategy

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def zone_sort_key(zone: Zone) -> tuple:
    """Priority descending, then creation order, then id."""
    created = zone.created_at or _EPOCH
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (-zone.priority, created, zone.id)


def seasonal_delta(adjustments: Sequence[SeasonalAdjustment], service_date: date) -> tuple[Decimal, Optional[SeasonalAdjustment]]:
    for seasonal in adjustments:
        if seasonal.contains(service_date.month):
            return to_decimal(seasonal.adjustment_value), seasonal
    return Decimal("0"), None


def density_delta(density: Optional[RouteDensity]) -> Decimal:
    """Bonus (negative) for well-served areas, scaled penalty for sparse ones."""
    if density is None or not density.enabled:
        return Decimal("0")
    target = to_decimal(density.target_density)
    # No recorded density counts as an empty route.
    current = to_decimal(density.current_density or 0)
    if target <= 0 or current >= target:
        return -to_decimal(density.density_bonus)
    return to_decimal(density.sparse_penalty) * (Decimal("1") - current / target)


def match_threshold(thresholds: Sequence[ZoneThreshold], minutes: float) -> Optional[ZoneThreshold]:
    for threshold in sorted(thresholds, key=lambda t: float("inf") if t.max_minutes is None else t.max_minutes):
        if threshold.contains(minutes):
            return threshold
    return None


class ZoneResolver:
    def __init__(self, drive_time_resolver: DriveTimeResolver | None = None) -> None:
        self.drive_time_resolver = drive_time_resolver

    async def resolve_zone(
        self,
        zones: Sequence[Zone],
        customer: Location,
        service_date: date | None = None,
        *,
        origin_drive_time: DriveTimeResult | None = None,
        thresholds: Sequence[ZoneThreshold] = (),
        drive_time_options: DriveTimeOptions | None = None,
    ) -> ZoneMatch:
        service_date = service_date or date.today()
        context = MatchContext(
            customer=customer,
            drive_time_resolver=self.drive_time_resolver,
            drive_time_options=drive_time_options or DriveTimeOptions(),
        )
        active = sorted((zone for zone in zones if zone.active), key=zone_sort_key)

        for zone in active:
            try:
                strategy = get_strategy(zone.kind)
            except ValueError:
                logger.warning(f"Skipping zone {zone.id} with unknown kind {zone.kind!r}")
                continue
            try:
                outcome = await strategy.matches(zone, context)
            except Exception as exc:
                logger.warning(f"Skipping zone {zone.id}: {zone.kind.value} predicate failed: {exc!r}")
                continue
            if not outcome.matched:
                continue
            return self._build_match(zone, service_date, outcome.details)

        if origin_drive_time is not None and thresholds:
            threshold = match_threshold(thresholds, origin_drive_time.minutes)
            if threshold is not None:
                return ZoneMatch(
                    zone=None,
                    adjustment=make_adjustment("percentage", threshold.adjustment_percent),
                    reason=f"drive-time threshold: {threshold.key}",
                    metadata={
                        "strategy": "threshold",
                        "threshold": threshold.key,
                        "threshold_name": threshold.name,
                        "drive_time_minutes": origin_drive_time.minutes,
                        "max_minutes": threshold.max_minutes,
                    },
                )

        logger.debug(f"No zone matched ({len(active)} active zone(s) evaluated)")
        return ZoneMatch.neutral(NO_ZONE_REASON, evaluated=len(active))

    @staticmethod
    def _build_match(zone: Zone, service_date: date, details: dict) -> ZoneMatch:
        base_value = to_decimal(zone.adjustment.value)
        seasonal_value, seasonal = seasonal_delta(zone.seasonal_adjustments, service_date)
        density_value = density_delta(zone.route_density)
        combined = base_value + seasonal_value + density_value

        metadata = {
            "strategy": zone.kind.value,
            "priority": zone.priority,
            "base_adjustment": str(base_value),
            **details,
        }
        if seasonal is not None:
            metadata["seasonal_adjustment"] = str(seasonal_value)
            metadata["season"] = f"{seasonal.start_month}-{seasonal.end_month}"
        if density_value:
            metadata["density_adjustment"] = str(density_value)

        return ZoneMatch(
            zone=zone,
            adjustment=zone.adjustment.with_value(combined),
            reason=f"matched {zone.kind.value} zone '{zone.name}'",
            metadata=metadata,
        )
