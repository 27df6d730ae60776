import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from geopricing.errors import ConfigurationError, DistanceMatrixError, GeocodingFailure
from geopricing.models.adjustments import PercentageAdjustment
from geopricing.models.domain import (
    CalculationError,
    CalculationOptions,
    CalculationResult,
    ListArea,
    Location,
    RadiusArea,
    ServiceItem,
    ShopOrigin,
    Zone,
    ZoneKind,
)
from geopricing.persistence.stores import InMemoryCalculationStore, InMemoryOriginStore, InMemoryZoneStore
from geopricing.services.orchestrator import GeopricingOrchestrator, select_origin
from geopricing.services.routing.distance_matrix import MatrixElement
from geopricing.services.routing.drive_time import DriveTimeResolver

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

TORONTO_SHOP = ShopOrigin(
    id="O1",
    business_id="B1",
    name="Toronto Shop",
    location=Location(lat=43.6532, lng=-79.3832, address="100 Queen St W", city="Toronto"),
    base_rate_per_unit=Decimal("20"),
    is_primary=True,
)

ADDRESSES = {
    "near": Location(lat=43.6629, lng=-79.3957, address="near", city="Toronto", postal_code="M5S 1A1"),
    "far": Location(lat=43.8561, lng=-79.3370, address="far", city="Markham", postal_code="L3R 0A1"),
}


class DummyGeocoder:
    def __init__(self, locations=None):
        self.locations = locations or ADDRESSES

    async def geocode(self, address):
        try:
            return self.locations[address]
        except KeyError:
            raise GeocodingFailure(address, "ZERO_RESULTS") from None

    async def aclose(self):
        return None


class DummyMatrix:
    def __init__(self, seconds: float = 180.0, error: Exception | None = None):
        self.seconds = seconds
        self.error = error

    async def matrix(self, origin, destinations, options):
        if self.error is not None:
            raise self.error
        return [MatrixElement(self.seconds, 2500.0, "3 mins", "2.5 km") for _ in destinations]

    async def aclose(self):
        return None


def _orchestrator(matrix=None, origins=(TORONTO_SHOP,), zones=(), store=None):
    resolver = DriveTimeResolver(matrix or DummyMatrix(), None, ttl_seconds=900, timeout_seconds=1.0)
    return GeopricingOrchestrator(
        DummyGeocoder(),
        InMemoryOriginStore(origins),
        InMemoryZoneStore(zones),
        resolver,
        calculation_store=store,
        quote_validity_minutes=30,
        clock=lambda: NOW,
    )


LAWN = [ServiceItem(type="lawn_mowing", area=Decimal("5000"))]


def test_close_customer_gets_discounted_quote():
    store = InMemoryCalculationStore()

    result = asyncio.run(_orchestrator(store=store).calculate("B1", "near", LAWN))

    assert isinstance(result, CalculationResult)
    assert result.origin_id == "O1"
    assert result.drive_time.minutes == 3
    assert result.final_price == Decimal("95.00")
    assert result.adjusted_rate == Decimal("19.00")
    assert result.matched_zone.reason == "drive-time threshold: close"
    assert not result.estimated
    assert result.expires_at - result.computed_at == timedelta(minutes=30)
    assert [entry.zone_key for entry in result.rate_table] == ["close", "standard", "extended"]
    assert [entry.is_current for entry in result.rate_table] == [True, False, False]
    assert result.rate_table[2].price_for_property == Decimal("110.00")
    assert "Close Proximity" in result.explanation

    stored = asyncio.run(store.get(result.id))
    assert stored["final_price"] == "95.00"


def test_long_drive_gets_extended_surcharge():
    result = asyncio.run(_orchestrator(DummyMatrix(seconds=25 * 60)).calculate("B1", "near", LAWN))

    assert result.final_price == Decimal("110.00")
    assert result.matched_zone.metadata["threshold"] == "extended"


def test_provider_outage_gives_estimated_quote():
    matrix = DummyMatrix(error=DistanceMatrixError("REQUEST_DENIED"))

    result = asyncio.run(_orchestrator(matrix).calculate("B1", "near", LAWN))

    assert isinstance(result, CalculationResult)
    assert result.estimated
    assert "about" in result.explanation


def test_configured_zone_overrides_thresholds_and_minimum():
    zone = Zone(
        id="Z1",
        business_id="B1",
        name="Markham North",
        kind=ZoneKind.CITY,
        area=ListArea(("Markham",)),
        adjustment=PercentageAdjustment(Decimal("15")),
        minimum_charge=Decimal("75"),
    )
    small_job = [ServiceItem(type="lawn_mowing", area=Decimal("1000"))]

    result = asyncio.run(_orchestrator(zones=(zone,)).calculate("B1", "far", small_job))

    assert result.matched_zone.zone is zone
    assert result.minimum_charge == Decimal("75")
    assert result.final_price == Decimal("75.00")


def test_unknown_address_returns_address_not_found():
    result = asyncio.run(_orchestrator().calculate("B1", "nowhere", LAWN))

    assert result == CalculationError(code="address_not_found", message="We could not find that address.")


def test_business_without_origins_returns_service_unavailable():
    result = asyncio.run(_orchestrator(origins=()).calculate("B1", "near", LAWN))

    assert isinstance(result, CalculationError)
    assert result.code == "service_unavailable"


def test_preferred_origin_is_used_when_active():
    north = ShopOrigin(
        id="O2",
        business_id="B1",
        name="Markham Shop",
        location=Location(lat=43.8561, lng=-79.3370, city="Markham"),
        base_rate_per_unit=Decimal("25"),
    )
    options = CalculationOptions(preferred_origin_id="O2")

    result = asyncio.run(_orchestrator(origins=(TORONTO_SHOP, north)).calculate("B1", "near", LAWN, options))

    assert result.origin_id == "O2"
    assert result.base_rate == Decimal("25")


def test_select_origin_prefers_nearest_in_radius():
    far_primary = ShopOrigin(
        id="P",
        business_id="B1",
        name="Ottawa",
        location=Location(lat=45.4215, lng=-75.6972, city="Ottawa"),
        base_rate_per_unit=Decimal("20"),
        is_primary=True,
    )
    near = ShopOrigin(
        id="N",
        business_id="B1",
        name="Toronto",
        location=Location(lat=43.65, lng=-79.38, city="Toronto"),
        base_rate_per_unit=Decimal("20"),
    )

    assert select_origin([far_primary, near], ADDRESSES["near"]).id == "N"


def test_select_origin_falls_back_to_city_then_primary():
    same_city = ShopOrigin(
        id="C",
        business_id="B1",
        name="Markham depot",
        location=Location(lat=45.0, lng=-78.0, city="markham"),
        base_rate_per_unit=Decimal("20"),
        service_radius_km=1,
    )
    primary = ShopOrigin(
        id="P",
        business_id="B1",
        name="Ottawa",
        location=Location(lat=45.4215, lng=-75.6972, city="Ottawa"),
        base_rate_per_unit=Decimal("20"),
        service_radius_km=1,
        is_primary=True,
    )

    assert select_origin([primary, same_city], ADDRESSES["far"]).id == "C"
    assert select_origin([primary, same_city], ADDRESSES["near"]).id == "P"


def test_select_origin_without_candidates_raises():
    inactive = ShopOrigin(
        id="X",
        business_id="B1",
        name="Closed",
        location=Location(lat=43.65, lng=-79.38),
        base_rate_per_unit=Decimal("20"),
        active=False,
    )

    with pytest.raises(ConfigurationError):
        select_origin([inactive], ADDRESSES["near"])


def test_calculate_batch_drops_failures():
    addresses = ["near", "far", "nowhere", "near", "far", "near", "far"]

    results = asyncio.run(_orchestrator().calculate_batch("B1", addresses, LAWN))

    assert len(results) == 6
    assert len({result.id for result in results}) == 6


def test_check_availability():
    orchestrator = _orchestrator()

    available = asyncio.run(orchestrator.check_availability("B1", "near"))
    missing = asyncio.run(orchestrator.check_availability("B1", "nowhere"))

    assert available.available
    assert available.drive_time_minutes == 3
    assert available.zone_name == "Close Proximity"
    assert not missing.available


def test_zone_with_bad_unit_does_not_abort_calculation():
    zone = Zone(
        id="Z9",
        business_id="B1",
        name="Broken radius",
        kind=ZoneKind.RADIUS,
        area=RadiusArea(43.6532, -79.3832, 5, "mi"),
        adjustment=PercentageAdjustment(Decimal("25")),
        priority=10,
    )

    result = asyncio.run(_orchestrator(zones=(zone,)).calculate("B1", "near", LAWN))

    assert isinstance(result, CalculationResult)
    assert result.matched_zone.reason == "drive-time threshold: close"
    assert result.final_price == Decimal("95.00")
