"""Delivery cost resolution: geocoded, zone and static strategies."""

import asyncio

import pytest

from order_intake.core.config import get_settings
from order_intake.core.errors import BelowMinimum, NotFound, ZoneInactive
from order_intake.services.delivery import DeliveryCostResolver
from order_intake.services.geo import BaseGeoService, DeliveryQuoteResult, MockGeoService
from order_intake.services.store import BranchConfig


class FixedGeoService(BaseGeoService):
    """Geo collaborator with a scripted answer."""

    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return "fixed"

    async def quote(self, branch, lat, lng):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result

    async def health_check(self) -> bool:
        return True


def delivery(order_request, **overrides):
    overrides.setdefault("delivery_address", "Av. Colón 1200")
    return order_request(service_type="delivery", **overrides)


async def branch_of(store):
    return await store.get_branch_config("branch-1")


async def test_pickup_has_no_delivery_cost(store, order_request):
    quote = await DeliveryCostResolver(store, MockGeoService()).resolve(
        order_request(), await branch_of(store), 100.0
    )
    assert quote.amount == 0.0
    assert quote.strategy == "none"


async def test_geocoded_quote_is_used(store, order_request):
    geo = FixedGeoService(DeliveryQuoteResult(available=True, cost=1900.0, distance_km=3.2))
    request = delivery(order_request, delivery_lat=-31.41, delivery_lng=-64.18,
                       delivery_cost_estimate=50.0)

    quote = await DeliveryCostResolver(store, geo).resolve(request, await branch_of(store), 100.0)

    assert quote.amount == 1900.0
    assert quote.strategy == "geocoded"
    assert quote.distance_km == 3.2
    assert not quote.degraded


async def test_geocoded_does_not_apply_minimum(store, order_request):
    geo = FixedGeoService(DeliveryQuoteResult(available=True, cost=1500.0))
    request = delivery(order_request, delivery_lat=-31.41, delivery_lng=-64.18)

    quote = await DeliveryCostResolver(store, geo).resolve(request, await branch_of(store), 10.0)
    assert quote.amount == 1500.0


@pytest.mark.parametrize("geo", [
    FixedGeoService(DeliveryQuoteResult.unavailable("out_of_radius")),
    FixedGeoService(error=RuntimeError("maps down")),
])
async def test_geocoded_failure_falls_back_to_client_estimate(store, order_request, geo):
    request = delivery(order_request, delivery_lat=-31.41, delivery_lng=-64.18,
                       delivery_cost_estimate=1750.0, delivery_distance_km=4.0)

    quote = await DeliveryCostResolver(store, geo).resolve(request, await branch_of(store), 100.0)

    assert quote.amount == 1750.0
    assert quote.degraded
    assert quote.distance_km == 4.0


async def test_geocoded_timeout_falls_back_to_zero(store, order_request, monkeypatch):
    monkeypatch.setenv("DELIVERY_QUOTE_TIMEOUT_SECONDS", "0.05")
    get_settings.cache_clear()
    geo = FixedGeoService(DeliveryQuoteResult(available=True, cost=1900.0), delay=0.5)
    request = delivery(order_request, delivery_lat=-31.41, delivery_lng=-64.18)

    quote = await DeliveryCostResolver(store, geo).resolve(request, await branch_of(store), 100.0)

    assert quote.amount == 0.0
    assert quote.degraded


async def test_zone_cost_and_estimate(store, order_request):
    quote = await DeliveryCostResolver(store, MockGeoService()).resolve(
        delivery(order_request, delivery_zone_id="zone-a"), await branch_of(store), 5000.0
    )
    assert quote.amount == 400.0
    assert quote.zone_id == "zone-a"
    assert quote.prep_minutes_override == 55


async def test_zone_minimum_rejects_smaller_orders(store, order_request):
    with pytest.raises(BelowMinimum) as exc:
        await DeliveryCostResolver(store, MockGeoService()).resolve(
            delivery(order_request, delivery_zone_id="zone-a"), await branch_of(store), 4000.0
        )
    assert exc.value.minimum == 5000.0
    assert exc.value.to_dict()["minimum"] == 5000.0


async def test_zone_without_minimum_accepts_any_subtotal(store, order_request):
    quote = await DeliveryCostResolver(store, MockGeoService()).resolve(
        delivery(order_request, delivery_zone_id="zone-free"), await branch_of(store), 1.0
    )
    assert quote.amount == 0.0
    assert quote.strategy == "zone"


@pytest.mark.parametrize("zone_id, error", [
    ("zone-unknown", NotFound),
    ("zone-elsewhere", NotFound),
    ("zone-off", ZoneInactive),
])
async def test_zone_rejections(store, order_request, zone_id, error):
    with pytest.raises(error):
        await DeliveryCostResolver(store, MockGeoService()).resolve(
            delivery(order_request, delivery_zone_id=zone_id), await branch_of(store), 9000.0
        )


async def test_coordinates_take_precedence_over_zone(store, order_request):
    geo = FixedGeoService(DeliveryQuoteResult(available=True, cost=1600.0))
    request = delivery(order_request, delivery_zone_id="zone-a",
                       delivery_lat=-31.41, delivery_lng=-64.18)

    quote = await DeliveryCostResolver(store, geo).resolve(request, await branch_of(store), 100.0)
    assert quote.amount == 1600.0
    assert quote.zone_id is None


async def test_static_branch_cost_and_minimum(store, order_request):
    resolver = DeliveryCostResolver(store, MockGeoService())
    branch = await branch_of(store)

    quote = await resolver.resolve(delivery(order_request), branch, 2000.0)
    assert quote.amount == 300.0
    assert quote.strategy == "static"

    with pytest.raises(BelowMinimum) as exc:
        await resolver.resolve(delivery(order_request), branch, 1999.0)
    assert exc.value.minimum == 2000.0


async def test_large_minimum_is_printed_in_full(store, order_request):
    branch = BranchConfig(branch_id="branch-1", delivery_cost=300.0, delivery_minimum=1500000.0)

    with pytest.raises(BelowMinimum) as exc:
        await DeliveryCostResolver(store, MockGeoService()).resolve(
            delivery(order_request), branch, 1000.0
        )
    assert "$1,500,000.00" in exc.value.message
