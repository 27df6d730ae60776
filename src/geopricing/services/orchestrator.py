"""End-to-end geopricing calculation.

geocode -> select origin -> drive time -> resolve zone -> price -> result.
Only a geocoding failure or a configuration problem aborts a calculation;
both come back as :class:`CalculationError` values rather than exceptions.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence, Union

from ..config import settings
from ..errors import ConfigurationError, GeocodingFailure
from ..models.adjustments import to_decimal
from ..models.domain import (
    CalculationError,
    CalculationOptions,
    CalculationResult,
    DriveTimeOptions,
    Location,
    ServiceItem,
    ShopOrigin,
)
from ..persistence.stores import CalculationStore, ShopOriginStore, ZoneStore
from .geocoding import GeocodingClient
from .geospatial import haversine_km
from .outputs.formatter import build_rate_table, explanation_text
from .pricing.combiner import PricingCombiner
from .routing.drive_time import DriveTimeResolver
from .zoning.resolver import ZoneResolver
from .zoning.strategies import normalize_city

logger = logging.getLogger(__name__)

BATCH_SIZE = 5

CalculationOutcome = Union[CalculationResult, CalculationError]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def select_origin(
    origins: Sequence[ShopOrigin],
    customer: Location,
    preferred_origin_id: Optional[str] = None,
) -> ShopOrigin:
    """Preferred id, then nearest within its service radius, then same city, then primary."""
    active = [origin for origin in origins if origin.active]
    if not active:
        raise ConfigurationError("No active shop origin is configured for this business.")

    if preferred_origin_id:
        for origin in active:
            if origin.id == preferred_origin_id:
                return origin
        logger.info(f"Preferred origin {preferred_origin_id} is not active; selecting automatically")

    in_range = []
    for origin in active:
        distance_km = haversine_km(origin.location.lat, origin.location.lng, customer.lat, customer.lng)
        if distance_km <= origin.service_radius_km:
            in_range.append((distance_km, origin.id, origin))
    if in_range:
        return min(in_range, key=lambda item: (item[0], item[1]))[2]

    if customer.city:
        wanted = normalize_city(customer.city)
        for origin in active:
            if origin.location.city and normalize_city(origin.location.city) == wanted:
                return origin

    for origin in active:
        if origin.is_primary:
            return origin

    raise ConfigurationError("No shop origin serves this location and no primary origin is configured.")


@dataclass(slots=True)
class Availability:
    available: bool
    origin_name: Optional[str] = None
    drive_time_minutes: Optional[int] = None
    zone_name: Optional[str] = None
    message: Optional[str] = None


class GeopricingOrchestrator:
    def __init__(
        self,
        geocoder: GeocodingClient,
        origin_store: ShopOriginStore,
        zone_store: ZoneStore,
        drive_time_resolver: DriveTimeResolver,
        *,
        zone_resolver: ZoneResolver | None = None,
        combiner: PricingCombiner | None = None,
        calculation_store: CalculationStore | None = None,
        quote_validity_minutes: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.geocoder = geocoder
        self.origin_store = origin_store
        self.zone_store = zone_store
        self.drive_time_resolver = drive_time_resolver
        self.zone_resolver = zone_resolver or ZoneResolver(drive_time_resolver)
        self.combiner = combiner or PricingCombiner()
        self.calculation_store = calculation_store
        self.quote_validity = timedelta(minutes=quote_validity_minutes or settings.quote_validity_minutes)
        self._clock = clock

    async def calculate(
        self,
        business_id: str,
        customer_address: str,
        services: Sequence[ServiceItem] = (),
        options: CalculationOptions | None = None,
        *,
        persist: bool = True,
    ) -> CalculationOutcome:
        options = options or CalculationOptions()
        try:
            customer = await self.geocoder.geocode(customer_address)
        except GeocodingFailure as exc:
            logger.info(f"Geocoding failed for business {business_id}: {exc}")
            return CalculationError(code="address_not_found", message="We could not find that address.")
        except ConfigurationError as exc:
            logger.error(f"Geocoding is not configured: {exc}")
            return CalculationError(code="service_unavailable", message="Pricing is temporarily unavailable.")

        try:
            return await self._calculate_for_location(business_id, customer, services, options, persist)
        except ConfigurationError as exc:
            logger.error(f"Cannot price for business {business_id}: {exc}")
            return CalculationError(code="service_unavailable", message="Service is not available in your area.")

    async def _calculate_for_location(
        self,
        business_id: str,
        customer: Location,
        services: Sequence[ServiceItem],
        options: CalculationOptions,
        persist: bool,
    ) -> CalculationResult:
        origins = await self.origin_store.list_origins(business_id)
        origin = select_origin(origins, customer, options.preferred_origin_id)
        drive_options = DriveTimeOptions(
            traffic_model=options.traffic_model,
            avoid_highways=options.avoid_highways,
            avoid_tolls=options.avoid_tolls,
            use_cache=options.use_cache,
        )

        drive_time = await self.drive_time_resolver.compute_drive_time(origin.location, customer, drive_options)
        zones = await self.zone_store.list_zones(business_id)
        match = await self.zone_resolver.resolve_zone(
            zones,
            customer,
            options.service_date,
            origin_drive_time=drive_time,
            thresholds=origin.zone_thresholds,
            drive_time_options=drive_options,
        )

        zone_minimum = match.zone.minimum_charge if match.zone is not None else None
        minimum_charge = to_decimal(zone_minimum) if zone_minimum is not None else origin.minimum_charge
        pricing = self.combiner.compute_price(
            origin.base_rate_per_unit,
            services,
            match,
            minimum_charge,
            origin.round_to,
            service_rates=origin.service_rates,
        )

        property_size = sum((to_decimal(item.area) for item in services), Decimal("0")) or None
        computed_at = self._clock()
        result = CalculationResult(
            id=uuid.uuid4().hex,
            business_id=business_id,
            origin_id=origin.id,
            origin_name=origin.name,
            customer_location=customer,
            drive_time=drive_time,
            matched_zone=match,
            base_rate=origin.base_rate_per_unit,
            adjusted_rate=pricing.adjusted_rate,
            per_service_pricing=pricing.per_service,
            base_price=pricing.base_price,
            adjusted_price=pricing.adjusted_price,
            final_price=pricing.final_price,
            minimum_charge=pricing.minimum_charge,
            currency=origin.currency,
            computed_at=computed_at,
            expires_at=computed_at + self.quote_validity,
            rate_table=build_rate_table(
                origin.zone_thresholds,
                origin.base_rate_per_unit,
                property_size,
                match.metadata.get("threshold"),
            ),
            explanation=explanation_text(match, drive_time, origin.location.city or origin.name),
        )
        logger.info(
            f"Priced {result.id} for business {business_id}: origin={origin.id} "
            f"minutes={drive_time.minutes} estimated={drive_time.estimated} "
            f"zone='{match.name}' final={result.final_price} {result.currency}"
        )
        if persist:
            await self._store(result)
        return result

    async def _store(self, result: CalculationResult) -> None:
        if self.calculation_store is None:
            return
        try:
            await self.calculation_store.save(result)
        except Exception as exc:
            logger.warning(f"Failed to persist calculation {result.id}: {exc}")

    async def calculate_batch(
        self,
        business_id: str,
        addresses: Sequence[str],
        services: Sequence[ServiceItem] = (),
        options: CalculationOptions | None = None,
        *,
        batch_size: int = BATCH_SIZE,
    ) -> list[CalculationResult]:
        """Price many addresses a few at a time; failed addresses are logged and dropped."""
        results: list[CalculationResult] = []
        for start in range(0, len(addresses), batch_size):
            chunk = addresses[start : start + batch_size]
            outcomes = await asyncio.gather(
                *(self.calculate(business_id, address, services, options) for address in chunk),
                return_exceptions=True,
            )
            for address, outcome in zip(chunk, outcomes):
                if isinstance(outcome, CalculationResult):
                    results.append(outcome)
                elif isinstance(outcome, CalculationError):
                    logger.warning(f"Batch pricing skipped '{address}': {outcome.code}")
                else:
                    logger.error(f"Batch pricing failed for '{address}': {outcome!r}")
        return results

    async def check_availability(self, business_id: str, address: str) -> Availability:
        outcome = await self.calculate(business_id, address, (), CalculationOptions(use_cache=True), persist=False)
        if isinstance(outcome, CalculationError):
            return Availability(available=False, message=outcome.message)
        return Availability(
            available=True,
            origin_name=outcome.origin_name,
            drive_time_minutes=outcome.drive_time.minutes,
            zone_name=outcome.matched_zone.name,
        )
