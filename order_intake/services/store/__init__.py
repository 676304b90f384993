"""
Order Store Factory

Provides a single entry point for obtaining the order store.
Automatically selects the in-memory or SQL store based on ENV_MODE.

Usage:
    from order_intake.services.store import get_order_store

    store = get_order_store()
    number = await store.next_order_number("branch-centro")

Environment Switching:
    - ENV_MODE=development → MemoryOrderStore seeded with demo data
    - ENV_MODE=staging/production → SqlOrderStore on DATABASE_URL
"""

import logging
from functools import lru_cache

from order_intake.core.config import get_settings
from order_intake.database import get_engine
from order_intake.services.store.base import (
    ActivePromotion,
    BaseOrderStore,
    BranchConfig,
    CatalogExtra,
    CatalogItem,
    CustomerProfile,
    DeliveryZone,
    ModifierRecord,
    OrderLineRecord,
    OrderRecord,
    StoreCounts,
    StoreError,
)
from order_intake.services.store.memory import MemoryOrderStore, load_demo_data
from order_intake.services.store.sql import SqlOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """
    Get the configured order store instance.

    The instance is cached so every request shares the same store, which
    for the in-memory store is also what makes order numbers shared.
    """
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Order Store: Using SqlOrderStore ({settings.env_mode.value} mode)")
        return SqlOrderStore(get_engine())

    logger.info("Order Store: Using MemoryOrderStore (development mode)")
    return load_demo_data(MemoryOrderStore(min_latency=0.01, max_latency=0.05))


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "get_order_store",
    "reset_order_store",
    "ActivePromotion",
    "BaseOrderStore",
    "BranchConfig",
    "CatalogExtra",
    "CatalogItem",
    "CustomerProfile",
    "DeliveryZone",
    "ModifierRecord",
    "OrderLineRecord",
    "OrderRecord",
    "StoreCounts",
    "StoreError",
    "MemoryOrderStore",
    "SqlOrderStore",
]
