"""Catalog resolution against the in-memory store."""

from datetime import date

import pytest

from order_intake.core.config import get_settings
from order_intake.core.errors import NotFound, UpstreamTimeout, UpstreamUnavailable
from order_intake.services.catalog import CatalogResolver

TODAY = date(2026, 3, 10)


async def test_resolves_items_extras_and_promotions(store):
    catalog = await CatalogResolver(store).resolve(["pizza", "soda", "pizza"], today=TODAY)

    assert set(catalog.items) == {"pizza", "soda"}
    assert catalog.extra("pizza", "  OLIVES ").price == 150.0
    assert catalog.extra("soda", "Olives") is None
    assert catalog.best_promotion("pizza").price == 850.0
    assert catalog.best_promotion("soda") is None


async def test_missing_items_listed_in_error(store):
    with pytest.raises(NotFound) as exc:
        await CatalogResolver(store).resolve(["pizza", "ghost", "phantom"], today=TODAY)
    assert exc.value.payload["item_ids"] == ["ghost", "phantom"]
    assert exc.value.http_status == 404


async def test_promotion_outside_window_is_dropped(store):
    catalog = await CatalogResolver(store).resolve(["pizza"], today=date(2027, 1, 1))
    assert catalog.promotions == {}


async def test_other_channel_does_not_see_webapp_promotions(store):
    catalog = await CatalogResolver(store, channel="kiosk").resolve(["pizza"], today=TODAY)
    assert catalog.best_promotion("pizza") is None


async def test_slow_catalog_read_times_out(store, monkeypatch):
    monkeypatch.setenv("CATALOG_TIMEOUT_SECONDS", "0.05")
    get_settings.cache_clear()
    store.delay_operation("fetch_promotions", 0.5)

    with pytest.raises(UpstreamTimeout) as exc:
        await CatalogResolver(store).resolve(["pizza"], today=TODAY)
    assert exc.value.payload["component"] == "promotions"
    assert exc.value.retryable
    assert exc.value.http_status == 504


async def test_failing_catalog_read_is_unavailable(store):
    store.fail_operation("fetch_catalog_items")

    with pytest.raises(UpstreamUnavailable) as exc:
        await CatalogResolver(store).resolve(["pizza"], today=TODAY)
    assert exc.value.payload["component"] == "catalog"
