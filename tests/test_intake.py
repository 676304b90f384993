"""End-to-end intake scenarios against the in-memory store."""

import asyncio
import gc
import logging
from datetime import timedelta

import pytest

from order_intake.core.errors import (
    BelowMinimum,
    ChannelDisabled,
    IdempotencyConflict,
    InvalidPaymentMethod,
    InvalidPromotion,
    NotFound,
    SequenceUnavailable,
    UpstreamTimeout,
    ValidationFailed,
    WriteFailed,
)
from order_intake.core.config import get_settings
from order_intake.models import PaymentState, ServiceType, StoreStatus
from order_intake.services.intake import OrderIntake
from order_intake.services.store import BranchConfig


def stored(store, result):
    return store.orders[result.order_id]


async def test_pickup_order_uses_promotion_price(intake, store, order_request):
    result = await intake.submit(order_request(lines=[{"item_id": "pizza", "quantity": 2}]))

    order = stored(store, result)
    assert order.subtotal == 1700.0
    assert order.delivery_cost == 0.0
    assert order.total == 1700.0
    assert order.channel == "webapp"
    assert result.order_number == 1
    assert result.status == "pending_confirmation"
    assert order.payment_state == PaymentState.PENDING_ON_DELIVERY


async def test_client_prices_never_reach_the_order(intake, store, order_request):
    result = await intake.submit(order_request(
        lines=[{"item_id": "pizza", "quantity": 1, "extras": [{"name": "Olives", "price": 0}]}],
        delivery_cost_estimate=0,
    ))
    order = stored(store, result)
    # 850 promotional pizza + 150 catalog olives
    assert order.subtotal == 1000.0
    assert order.total == 1000.0


async def test_total_is_subtotal_plus_delivery(intake, store, order_request):
    result = await intake.submit(order_request(
        service_type="delivery",
        delivery_address="Av. Colón 1200",
        delivery_zone_id="zone-a",
        lines=[{"item_id": "pizza", "quantity": 4}, {"item_id": "empanada", "quantity": 4}],
    ))
    order = stored(store, result)
    lines = [l for l in store.order_lines.values() if l.order_id == order.id]

    assert order.subtotal == sum(l.subtotal for l in lines) == 5400.0
    assert order.delivery_cost == 400.0
    assert order.total == order.subtotal + order.delivery_cost
    assert order.delivery_zone_id == "zone-a"
    assert result.estimated_minutes == 55


@pytest.mark.parametrize("empanadas, accepted", [(8, False), (10, True)])
async def test_zone_minimum(intake, order_request, empanadas, accepted):
    request = order_request(
        service_type="delivery",
        delivery_address="Av. Colón 1200",
        delivery_zone_id="zone-a",
        lines=[{"item_id": "empanada", "quantity": empanadas}],
    )
    if accepted:
        result = await intake.submit(request)
        assert result.order_number == 1
    else:
        with pytest.raises(BelowMinimum) as exc:
            await intake.submit(request)
        assert exc.value.minimum == 5000.0
        assert exc.value.state == "quoting_delivery"


@pytest.mark.parametrize("method, auto_accept, status", [
    ("mercadopago", True, "awaiting_payment"),
    ("cash", True, "in_preparation"),
    ("cash", False, "pending_confirmation"),
])
async def test_initial_status(store, geo_service, now, order_request, method, auto_accept, status):
    store.add_branch(BranchConfig(branch_id="branch-1", auto_accept=auto_accept))
    intake = OrderIntake(store, geo_service, clock=lambda: now)

    result = await intake.submit(order_request(payment_method=method))

    order = stored(store, result)
    assert result.status == status
    assert (order.prep_started_at == now) == (status == "in_preparation")


async def test_estimates_and_promised_time(intake, store, now, order_request):
    result = await intake.submit(order_request())
    order = stored(store, result)
    assert result.estimated_minutes == 15
    assert order.promised_at == now + timedelta(minutes=15)


async def test_dynamic_prep_time_overrides_branch_default(intake, store, order_request):
    store.set_prep_minutes("branch-1", ServiceType.PICKUP, 25)
    result = await intake.submit(order_request())
    assert result.estimated_minutes == 25


async def test_sequential_orders_are_numbered(intake, order_request):
    numbers = [(await intake.submit(order_request())).order_number for _ in range(3)]
    assert numbers == [1, 2, 3]


async def test_concurrent_orders_get_distinct_numbers(store, geo_service, now, order_request):
    intake = OrderIntake(store, geo_service, clock=lambda: now)
    store.min_latency, store.max_latency = 0.001, 0.01

    results = await asyncio.gather(*[intake.submit(order_request()) for _ in range(40)])

    assert sorted(r.order_number for r in results) == list(range(1, 41))
    assert len({r.tracking_code for r in results}) == 40


@pytest.mark.parametrize("overrides, message", [
    ({"lines": []}, "At least one item"),
    ({"customer_name": "  "}, "customer_name"),
    ({"customer_phone": None}, "customer_phone"),
    ({"service_type": "dine_in"}, "Dine-in"),
    ({"service_type": "delivery"}, "delivery address"),
])
async def test_validation_rejections(intake, store, order_request, overrides, message):
    with pytest.raises(ValidationFailed) as exc:
        await intake.submit(order_request(**overrides))
    assert message in exc.value.message
    assert exc.value.state == "validating"
    assert store.orders == {}


async def test_item_not_sold_online_rejected(intake, order_request):
    with pytest.raises(ValidationFailed) as exc:
        await intake.submit(order_request(lines=[{"item_id": "staff-meal", "quantity": 1}]))
    assert exc.value.payload["item_id"] == "staff-meal"
    assert exc.value.state == "resolving_catalog"


async def test_unknown_item_rejected(intake, order_request):
    with pytest.raises(NotFound) as exc:
        await intake.submit(order_request(lines=[{"item_id": "ghost", "quantity": 1}]))
    assert exc.value.state == "resolving_catalog"


async def test_invalid_promotion_rejected(intake, order_request):
    with pytest.raises(InvalidPromotion) as exc:
        await intake.submit(order_request(
            lines=[{"item_id": "empanada", "quantity": 1, "promotion_line_id": "promo-pizza"}],
        ))
    assert exc.value.state == "pricing"


async def test_unknown_branch_rejected(intake, order_request):
    with pytest.raises(NotFound):
        await intake.submit(order_request(branch_id="branch-404"))


@pytest.mark.parametrize("config, service_type", [
    (BranchConfig(branch_id="branch-1", channel_active=False), "pickup"),
    (BranchConfig(branch_id="branch-1", store_status=StoreStatus.PAUSED,
                  pause_message="Back at 8pm"), "pickup"),
    (BranchConfig(branch_id="branch-1", store_status=StoreStatus.CLOSED), "pickup"),
    (BranchConfig(branch_id="branch-1", pickup_enabled=False), "pickup"),
    (BranchConfig(branch_id="branch-1", delivery_enabled=False), "delivery"),
])
async def test_branch_not_accepting(intake, store, order_request, config, service_type):
    store.add_branch(config)
    with pytest.raises(ChannelDisabled) as exc:
        await intake.submit(order_request(service_type=service_type,
                                          delivery_address="Av. Colón 1200"))
    if config.pause_message:
        assert exc.value.message == "Back at 8pm"


async def test_unknown_payment_method_consumes_no_rows(intake, store, order_request):
    with pytest.raises(InvalidPaymentMethod) as exc:
        await intake.submit(order_request(payment_method="barter"))
    assert exc.value.state == "classifying"
    assert store.orders == {}


async def test_sequence_failure_writes_nothing(intake, store, order_request):
    store.fail_operation("next_order_number")
    with pytest.raises(SequenceUnavailable):
        await intake.submit(order_request())
    assert store.orders == {}


async def test_write_failure_is_compensated(intake, store, order_request):
    store.fail_operation("insert_line_modifiers")
    with pytest.raises(WriteFailed) as exc:
        await intake.submit(order_request(
            lines=[{"item_id": "pizza", "quantity": 1, "removals": ["Onion"]}],
        ))
    assert exc.value.state == "writing"
    assert store.orders == {}
    assert store.order_lines == {}


async def test_catalog_timeout_rejects_request(store, geo_service, order_request, monkeypatch):
    monkeypatch.setenv("CATALOG_TIMEOUT_SECONDS", "0.05")
    get_settings.cache_clear()
    store.delay_operation("fetch_catalog_extras", 0.5)

    with pytest.raises(UpstreamTimeout):
        await OrderIntake(store, geo_service).submit(order_request())
    assert store.orders == {}


async def test_customer_backfilled_from_profile(intake, store, order_request):
    result = await intake.submit(
        order_request(customer_name=None, customer_phone=None),
        customer_token="token-ana",
    )
    order = stored(store, result)
    assert order.customer_name == "Ana Pérez"
    assert order.customer_phone == "351-555-0101"
    assert order.customer_user_id == "user-ana"


async def test_explicit_customer_data_wins_over_profile(intake, store, order_request):
    result = await intake.submit(order_request(), customer_token="token-ana")
    order = stored(store, result)
    assert order.customer_name == "Juan Gómez"
    assert order.customer_user_id == "user-ana"


async def test_idempotent_resubmission_returns_same_order(intake, store, order_request):
    request = order_request(idempotency_key="cart-7f3a9c21")

    first = await intake.submit(request)
    second = await intake.submit(request)

    assert second.replayed
    assert second.order_id == first.order_id
    assert second.order_number == first.order_number
    assert len(store.orders) == 1


async def test_cancelled_write_still_completes(store, geo_service, now, order_request):
    store.delay_operation("insert_order_line", 0.05)
    intake = OrderIntake(store, geo_service, clock=lambda: now)

    task = asyncio.create_task(intake.submit(order_request()))
    while not store.orders:
        await asyncio.sleep(0.001)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # The shielded writer finishes on its own
    for _ in range(100):
        if store.order_lines:
            break
        await asyncio.sleep(0.01)
    order_id = next(iter(store.orders))
    counts = await store.count_order_rows(order_id)
    assert (counts.orders, counts.lines) == (1, 1)


async def test_duplicate_key_during_failing_write_never_succeeds(store, geo_service, now, order_request):
    store.delay_operation("insert_order_line", 0.05)
    store.fail_operation("insert_order_line")
    intake = OrderIntake(store, geo_service, clock=lambda: now)
    request = order_request(idempotency_key="cart-race-0001")

    results = await asyncio.gather(
        *[intake.submit(request) for _ in range(3)],
        return_exceptions=True,
    )

    assert all(isinstance(r, (WriteFailed, IdempotencyConflict)) for r in results)
    assert sum(isinstance(r, WriteFailed) for r in results) == 1
    assert all(r.retryable for r in results)
    assert store.orders == {}
    assert store.order_lines == {}


async def test_key_of_order_still_being_written_is_a_conflict(store, geo_service, now, order_request):
    store.delay_operation("insert_order_line", 0.05)
    intake = OrderIntake(store, geo_service, clock=lambda: now)
    request = order_request(idempotency_key="cart-slow-0001")

    first = asyncio.create_task(intake.submit(request))
    while not store.orders:
        await asyncio.sleep(0.001)

    with pytest.raises(IdempotencyConflict) as exc:
        await intake.submit(request)
    assert exc.value.http_status == 409
    assert exc.value.retryable

    created = await first
    replay = await intake.submit(request)
    assert replay.replayed
    assert replay.order_id == created.order_id


async def test_cancelled_before_writing_leaves_nothing(store, geo_service, now, order_request):
    store.delay_operation("next_order_number", 0.5)
    intake = OrderIntake(store, geo_service, clock=lambda: now)

    task = asyncio.create_task(intake.submit(order_request()))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(0.05)
    assert store.orders == {}
    assert store.order_lines == {}
    assert store.modifiers == []


async def test_failed_write_after_cancel_is_not_left_unretrieved(
    store, geo_service, now, order_request, caplog
):
    store.delay_operation("insert_order_line", 0.05)
    store.fail_operation("insert_order_line")
    intake = OrderIntake(store, geo_service, clock=lambda: now)

    task = asyncio.create_task(intake.submit(order_request()))
    while not store.orders:
        await asyncio.sleep(0.001)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    for _ in range(100):
        if not store.orders:
            break
        await asyncio.sleep(0.01)
    assert store.orders == {}

    with caplog.at_level(logging.ERROR, logger="asyncio"):
        gc.collect()
        await asyncio.sleep(0)
    assert "never retrieved" not in caplog.text
