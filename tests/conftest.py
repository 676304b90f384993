"""
Shared fixtures: a small seeded menu on the in-memory store, an orchestrator
wired to it, and a builder for order requests.
"""

import os

os.environ.setdefault("ENV_MODE", "development")

from datetime import date, datetime, timezone

import pytest

from order_intake.core.config import get_settings
from order_intake.models import StoreStatus
from order_intake.schemas import OrderCreate
from order_intake.services import reset_intake_service
from order_intake.services.geo import MockGeoService, reset_geo_service
from order_intake.services.intake import OrderIntake
from order_intake.services.store import (
    ActivePromotion,
    BranchConfig,
    CatalogItem,
    CustomerProfile,
    DeliveryZone,
    MemoryOrderStore,
    reset_order_store,
)

FIXED_NOW = datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc)
BRANCH_ID = "branch-1"


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings and empty factory caches."""
    monkeypatch.setenv("ENV_MODE", "development")
    get_settings.cache_clear()
    reset_order_store()
    reset_geo_service()
    reset_intake_service()
    yield
    get_settings.cache_clear()
    reset_order_store()
    reset_geo_service()
    reset_intake_service()


def seed_menu(store: MemoryOrderStore) -> MemoryOrderStore:
    store.add_branch(BranchConfig(
        branch_id=BRANCH_ID,
        store_status=StoreStatus.OPEN,
        auto_accept=False,
        delivery_cost=300.0,
        delivery_minimum=2000.0,
        pickup_prep_minutes=15,
        delivery_prep_minutes=40,
        latitude=-31.4201,
        longitude=-64.1888,
    ))
    store.add_branch(BranchConfig(branch_id="branch-2"))
    store.add_item(
        CatalogItem(id="pizza", name="Pizza", base_price=1000.0, category_id="pizzas", station="oven"),
        extras={"Olives": 150.0, "Extra cheese": 200.0},
    )
    store.add_item(CatalogItem(id="empanada", name="Empanada", base_price=500.0, category_id="empanadas"))
    store.add_item(CatalogItem(id="soda", name="Soda", base_price=700.0, category_id="drinks"))
    store.add_item(CatalogItem(id="staff-meal", name="Staff meal", base_price=900.0,
                               available_in_channel=False))
    store.add_promotion(ActivePromotion(
        id="promo-pizza",
        item_id="pizza",
        price=850.0,
        promotion_id="promo-tuesday",
        channels=("webapp",),
        starts_on=date(2026, 1, 1),
        ends_on=date(2026, 12, 31),
    ))
    store.add_zone(DeliveryZone(id="zone-a", branch_id=BRANCH_ID, cost=400.0,
                                minimum_order=5000.0, estimated_minutes=55))
    store.add_zone(DeliveryZone(id="zone-free", branch_id=BRANCH_ID, cost=0.0))
    store.add_zone(DeliveryZone(id="zone-off", branch_id=BRANCH_ID, cost=400.0, is_active=False))
    store.add_zone(DeliveryZone(id="zone-elsewhere", branch_id="branch-2", cost=400.0))
    store.add_customer("token-ana", CustomerProfile(user_id="user-ana", full_name="Ana Pérez",
                                                    phone="351-555-0101"))
    return store


@pytest.fixture
def store() -> MemoryOrderStore:
    return seed_menu(MemoryOrderStore())


@pytest.fixture
def geo_service() -> MockGeoService:
    return MockGeoService()


@pytest.fixture
def intake(store, geo_service) -> OrderIntake:
    return OrderIntake(store, geo_service, clock=lambda: FIXED_NOW)


def make_order(**overrides) -> OrderCreate:
    """A valid cash pickup order for one pizza unless overridden."""
    data = {
        "branch_id": BRANCH_ID,
        "service_type": "pickup",
        "customer_name": "Juan Gómez",
        "customer_phone": "351-555-0199",
        "payment_method": "cash",
        "lines": [{"item_id": "pizza", "quantity": 1}],
    }
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def order_request():
    return make_order


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW
