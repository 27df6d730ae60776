"""Combine base rates, service areas and the zone adjustment into a price.

All arithmetic is ``Decimal``. The result depends only on the arguments, so
identical inputs always produce identical output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence, Union

from ...models.adjustments import HUNDRED, Adjustment, PercentageAdjustment, to_decimal
from ...models.domain import PricingResult, ServiceItem, ServicePrice, ZoneMatch

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
UNITS_PER_RATE = Decimal("1000")

Number = Union[Decimal, float, int, str]


def round_to_increment(value: Decimal, increment: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round ``value`` to a multiple of ``increment`` (e.g. 0.01, 0.25 or 1.00)."""
    if increment <= 0:
        raise ValueError("Rounding increment must be positive.")
    steps = (value / increment).quantize(Decimal("1"), rounding=rounding)
    return (steps * increment).quantize(increment)


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class PricingCombiner:
    def compute_price(
        self,
        base_rate_per_unit: Number,
        service_items: Sequence[ServiceItem],
        zone_match: ZoneMatch,
        minimum_charge: Number,
        round_to: Number = CENT,
        *,
        service_rates: Optional[Mapping[str, Number]] = None,
    ) -> PricingResult:
        base_rate = to_decimal(base_rate_per_unit)
        minimum = to_decimal(minimum_charge)
        increment = to_decimal(round_to)
        rates = {key: to_decimal(value) for key, value in (service_rates or {}).items()}
        zone = zone_match.zone
        adjustment = zone_match.adjustment
        max_discount = to_decimal(zone.maximum_discount) if zone and zone.maximum_discount is not None else None

        per_service: list[ServicePrice] = []
        for item in service_items:
            area = to_decimal(item.area)
            if area < 0:
                raise ValueError(f"Service area for '{item.type}' cannot be negative.")
            if item.custom_rate is not None:
                rate = to_decimal(item.custom_rate)
            else:
                rate = rates.get(item.type, base_rate)

            base_price = area / UNITS_PER_RATE * rate
            adjusted = base_price
            if zone is not None and item.type in zone.service_adjustments:
                service_adjustment = PercentageAdjustment(to_decimal(zone.service_adjustments[item.type]))
                adjusted = service_adjustment.apply(adjusted)
            adjusted = adjustment.apply(adjusted)
            if max_discount is not None:
                floor = base_price * (Decimal("1") - max_discount / HUNDRED)
                adjusted = max(adjusted, floor)
            adjusted = max(adjusted, Decimal("0"))

            per_service.append(
                ServicePrice(
                    type=item.type,
                    area=area,
                    rate=rate,
                    base_price=to_money(base_price),
                    adjusted_price=to_money(adjusted),
                )
            )

        base_total = sum((service.base_price for service in per_service), Decimal("0"))
        adjusted_total = sum((service.adjusted_price for service in per_service), Decimal("0"))
        floored = max(adjusted_total, minimum)
        final_price = round_to_increment(floored, increment)
        if final_price < minimum:
            final_price = round_to_increment(minimum, increment, rounding=ROUND_CEILING)
        if adjusted_total < minimum:
            logger.debug(f"Minimum charge {minimum} applied over adjusted total {adjusted_total}")

        return PricingResult(
            per_service=per_service,
            base_price=base_total,
            adjusted_price=adjusted_total,
            final_price=final_price,
            adjusted_rate=to_money(adjustment.apply_to_rate(base_rate)),
            minimum_charge=minimum,
            minimum_applied=adjusted_total < minimum,
        )


def apply_adjustment(adjustment: Adjustment, price: Number) -> Decimal:
    """Convenience wrapper returning the adjusted price rounded to cents."""
    return to_money(adjustment.apply(to_decimal(price)))


@dataclass(frozen=True, slots=True)
class ServicePackage:
    name: str
    description: str
    multiplier: Decimal
    features: tuple[str, ...] = ()


SERVICE_PACKAGES: dict[str, ServicePackage] = {
    "Basic": ServicePackage(
        name="Basic",
        description="Essential lawn mowing and edging",
        multiplier=Decimal("1.0"),
        features=("Mowing", "Basic edging", "Grass clipping removal"),
    ),
    "Standard": ServicePackage(
        name="Standard",
        description="Complete lawn care with trimming",
        multiplier=Decimal("1.3"),
        features=("Everything in Basic", "Precision trimming", "Weed control", "Leaf blowing"),
    ),
    "Premium": ServicePackage(
        name="Premium",
        description="Full-service lawn care and maintenance",
        multiplier=Decimal("1.6"),
        features=(
            "Everything in Standard",
            "Fertilization",
            "Aeration",
            "Seasonal treatments",
            "Priority scheduling",
        ),
    ),
}


def package_price(base_rate_per_unit: Number, package_name: str, property_size: Number) -> Decimal:
    """Price a whole property on a package tier: ``size / 1000 x rate x multiplier``, in cents."""
    try:
        package = SERVICE_PACKAGES[package_name]
    except KeyError:
        raise ValueError(f"Unknown service package '{package_name}'.") from None
    rate = to_decimal(base_rate_per_unit) * package.multiplier
    return to_money(to_decimal(property_size) / UNITS_PER_RATE * rate)
