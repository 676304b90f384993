"""HTTP surface: status codes and response shapes."""

import pytest
from fastapi.testclient import TestClient

from order_intake.main import app
from order_intake.services import get_intake_service
from order_intake.services.intake import OrderIntake
from order_intake.services.store import get_order_store

ORDER = {
    "branch_id": "branch-1",
    "service_type": "pickup",
    "customer_name": "Juan Gómez",
    "customer_phone": "351-555-0199",
    "payment_method": "cash",
    "lines": [{"item_id": "pizza", "quantity": 2}],
}


@pytest.fixture
def client(store, geo_service, now):
    intake = OrderIntake(store, geo_service, clock=lambda: now)
    app.dependency_overrides[get_intake_service] = lambda: intake
    app.dependency_overrides[get_order_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["health"] == "/health"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["order_store"] == "healthy"


def test_create_and_track_order(client):
    response = client.post("/api/orders", json=ORDER)
    assert response.status_code == 200
    created = response.json()
    assert created["order_number"] == 1
    assert created["status"] == "pending_confirmation"
    assert created["estimated_minutes"] == 15

    response = client.get(f"/api/orders/track/{created['tracking_code']}")
    assert response.status_code == 200
    tracked = response.json()
    assert tracked["order_number"] == 1
    assert tracked["total"] == 1700.0
    assert tracked["payment_state"] == "pending_on_delivery"
    assert tracked["service_type"] == "pickup"


def test_track_unknown_code(client):
    response = client.get("/api/orders/track/not-a-code")
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_malformed_body_is_400(client):
    body = {k: v for k, v in ORDER.items() if k != "payment_method"}
    response = client.post("/api/orders", json=body)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert "payment_method" in response.json()["error"]


def test_below_minimum_reports_minimum(client):
    response = client.post("/api/orders", json={
        **ORDER,
        "service_type": "delivery",
        "delivery_address": "Av. Colón 1200",
        "delivery_zone_id": "zone-a",
        "lines": [{"item_id": "empanada", "quantity": 8}],
    })
    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "below_minimum"
    assert body["minimum"] == 5000.0


def test_unknown_branch_is_404(client):
    response = client.post("/api/orders", json={**ORDER, "branch_id": "branch-404"})
    assert response.status_code == 404


def test_sequence_failure_is_retryable_500(client, store):
    store.fail_operation("next_order_number")
    response = client.post("/api/orders", json=ORDER)
    assert response.status_code == 500
    body = response.json()
    assert body["kind"] == "sequence_unavailable"
    assert body["retryable"] is True


def test_bearer_token_backfills_customer(client, store):
    body = {k: v for k, v in ORDER.items() if k not in ("customer_name", "customer_phone")}
    response = client.post("/api/orders", json=body,
                           headers={"Authorization": "Bearer token-ana"})
    assert response.status_code == 200

    order = store.orders[response.json()["order_id"]]
    assert order.customer_name == "Ana Pérez"


def test_missing_customer_without_token_is_400(client):
    body = {k: v for k, v in ORDER.items() if k != "customer_phone"}
    response = client.post("/api/orders", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "customer_phone is required"


@pytest.mark.parametrize("overrides", [
    {"lines": [{"item_id": "pizza", "quantity": 1,
                "extras": [{"name": "Olives", "quantity": 300000}]}]},
    {"lines": [{"item_id": "pizza", "quantity": 1,
                "inclusions": [{"name": "Pickles", "quantity": 21}]}]},
    {"lines": [{"item_id": "pizza", "quantity": 1, "removals": ["x" * 256]}]},
    {"lines": [{"item_id": "pizza", "quantity": 1, "extras": [{"name": "Olives"}] * 21}]},
    {"lines": [{"item_id": "pizza", "quantity": 1}] * 51},
    {"customer_email": "a" * 250 + "@example.com"},
])
def test_oversized_input_is_400_and_writes_nothing(client, store, overrides):
    response = client.post("/api/orders", json={**ORDER, **overrides})
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert store.orders == {}
    assert store.modifiers == []


def test_resubmission_of_incomplete_order_is_retryable_409(client, store):
    body = {**ORDER, "idempotency_key": "cart-api-0001"}
    first = client.post("/api/orders", json=body)
    assert first.status_code == 200

    # Order row still present while its lines are being removed
    store.order_lines.clear()

    response = client.post("/api/orders", json=body)
    assert response.status_code == 409
    assert response.json()["kind"] == "idempotency_conflict"
    assert response.json()["retryable"] is True
