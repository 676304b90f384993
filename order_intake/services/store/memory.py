"""
In-Memory Order Store Implementation

Process-local tables that honour the same single-table contract as the SQL
store. Used in development mode (ENV_MODE=development) and by the test suite.

Behavior:
    - Optional simulated latency per call
    - Per-operation failure and delay injection for exercising compensation
      and timeout handling
    - Order numbers come from a locked in-place increment, never read-then-write
"""

import asyncio
import logging
import random
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Iterable, Optional

from order_intake.models import ServiceType, StoreStatus
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

logger = logging.getLogger(__name__)


class MemoryOrderStore(BaseOrderStore):
    """
    In-memory implementation of the order store.

    Attributes:
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> store = MemoryOrderStore()
        >>> store.fail_operation("insert_order_line", after=1)
        >>> # the second line insert of the next order now raises StoreError
    """

    def __init__(self, min_latency: float = 0.0, max_latency: float = 0.0):
        self.min_latency = min_latency
        self.max_latency = max_latency

        self.branches: dict[str, BranchConfig] = {}
        self.items: dict[str, CatalogItem] = {}
        self.extras: dict[str, list[CatalogExtra]] = defaultdict(list)
        self.promotions: list[ActivePromotion] = []
        self.zones: dict[str, DeliveryZone] = {}
        self.customers: dict[str, CustomerProfile] = {}
        self.prep_minutes: dict[tuple[str, ServiceType], int] = {}

        self.orders: dict[str, OrderRecord] = {}
        self.order_lines: dict[str, OrderLineRecord] = {}
        self.modifiers: list[ModifierRecord] = []

        self._sequences: dict[str, int] = defaultdict(int)
        self._sequence_lock = threading.Lock()

        self._failures: dict[str, tuple[int, Exception]] = {}
        self._delays: dict[str, float] = {}
        self._calls: dict[str, int] = defaultdict(int)

        logger.info(
            f"MemoryOrderStore initialized "
            f"(latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "memory"

    # =========================================================================
    # SEEDING
    # =========================================================================

    def add_branch(self, config: BranchConfig) -> BranchConfig:
        self.branches[config.branch_id] = config
        return config

    def add_item(self, item: CatalogItem, extras: Optional[dict[str, float]] = None) -> CatalogItem:
        self.items[item.id] = item
        for name, price in (extras or {}).items():
            self.extras[item.id].append(CatalogExtra(item_id=item.id, name=name, price=price))
        return item

    def add_promotion(self, promotion: ActivePromotion) -> ActivePromotion:
        self.promotions.append(promotion)
        return promotion

    def add_zone(self, zone: DeliveryZone) -> DeliveryZone:
        self.zones[zone.id] = zone
        return zone

    def add_customer(self, token: str, profile: CustomerProfile) -> CustomerProfile:
        self.customers[token] = profile
        return profile

    def set_prep_minutes(self, branch_id: str, service_type: ServiceType, minutes: int) -> None:
        self.prep_minutes[(branch_id, service_type)] = minutes

    # =========================================================================
    # FAULT INJECTION
    # =========================================================================

    def fail_operation(
        self,
        operation: str,
        after: int = 0,
        error: Optional[Exception] = None,
    ) -> None:
        """
        Make ``operation`` raise once it has succeeded ``after`` more times.

        Args:
            operation: Store method name (e.g. "insert_order_line")
            after: Number of further calls that still succeed
            error: Exception to raise (StoreError by default)
        """
        failing_call = self._calls[operation] + after + 1
        self._failures[operation] = (
            failing_call,
            error or StoreError(f"simulated failure in {operation}"),
        )

    def delay_operation(self, operation: str, seconds: float) -> None:
        """Add a fixed delay to every call of ``operation``."""
        self._delays[operation] = seconds

    def clear_faults(self) -> None:
        self._failures.clear()
        self._delays.clear()

    async def _enter(self, operation: str) -> None:
        self._calls[operation] += 1
        call_number = self._calls[operation]

        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))
        if operation in self._delays:
            await asyncio.sleep(self._delays[operation])

        failure = self._failures.get(operation)
        if failure is not None and call_number >= failure[0]:
            logger.debug(f"Memory: simulated failure in {operation}")
            raise failure[1]

    # =========================================================================
    # READS
    # =========================================================================

    async def get_branch_config(self, branch_id: str) -> Optional[BranchConfig]:
        await self._enter("get_branch_config")
        return self.branches.get(branch_id)

    async def fetch_catalog_items(self, item_ids: Iterable[str]) -> list[CatalogItem]:
        await self._enter("fetch_catalog_items")
        return [self.items[i] for i in set(item_ids) if i in self.items]

    async def fetch_catalog_extras(self, item_ids: Iterable[str]) -> list[CatalogExtra]:
        await self._enter("fetch_catalog_extras")
        return [extra for i in set(item_ids) for extra in self.extras.get(i, [])]

    async def fetch_promotions(self, item_ids: Iterable[str]) -> list[ActivePromotion]:
        await self._enter("fetch_promotions")
        wanted = set(item_ids)
        return [p for p in self.promotions if p.item_id in wanted]

    async def get_delivery_zone(self, zone_id: str) -> Optional[DeliveryZone]:
        await self._enter("get_delivery_zone")
        return self.zones.get(zone_id)

    async def get_customer_by_token(self, token: str) -> Optional[CustomerProfile]:
        await self._enter("get_customer_by_token")
        return self.customers.get(token)

    async def get_dynamic_prep_minutes(
        self,
        branch_id: str,
        service_type: ServiceType,
    ) -> Optional[int]:
        await self._enter("get_dynamic_prep_minutes")
        return self.prep_minutes.get((branch_id, service_type))

    async def find_order_by_idempotency_key(
        self,
        branch_id: str,
        key: str,
    ) -> Optional[OrderRecord]:
        await self._enter("find_order_by_idempotency_key")
        for order in self.orders.values():
            if order.branch_id == branch_id and order.idempotency_key == key:
                return replace(order)
        return None

    async def get_order_by_tracking_code(self, tracking_code: str) -> Optional[OrderRecord]:
        await self._enter("get_order_by_tracking_code")
        for order in self.orders.values():
            if order.tracking_code == tracking_code:
                return replace(order)
        return None

    # =========================================================================
    # SEQUENCE
    # =========================================================================

    async def next_order_number(self, branch_id: str) -> int:
        await self._enter("next_order_number")
        with self._sequence_lock:
            self._sequences[branch_id] += 1
            return self._sequences[branch_id]

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert_order(self, order: OrderRecord) -> None:
        await self._enter("insert_order")
        if order.id in self.orders:
            raise StoreError(f"duplicate order id {order.id}")
        for existing in self.orders.values():
            if existing.branch_id != order.branch_id:
                continue
            if existing.order_number == order.order_number:
                raise StoreError(f"duplicate order number {order.order_number}")
            if order.idempotency_key and existing.idempotency_key == order.idempotency_key:
                raise StoreError(f"duplicate idempotency key {order.idempotency_key}")
        self.orders[order.id] = replace(order)

    async def insert_order_line(self, line: OrderLineRecord) -> None:
        await self._enter("insert_order_line")
        if line.order_id not in self.orders:
            raise StoreError(f"order {line.order_id} does not exist")
        self.order_lines[line.id] = replace(line)

    async def insert_line_modifiers(self, modifiers: list[ModifierRecord]) -> None:
        await self._enter("insert_line_modifiers")
        for modifier in modifiers:
            if modifier.order_line_id not in self.order_lines:
                raise StoreError(f"order line {modifier.order_line_id} does not exist")
        self.modifiers.extend(replace(m) for m in modifiers)

    async def delete_line_modifiers(self, line_ids: list[str]) -> None:
        await self._enter("delete_line_modifiers")
        doomed = set(line_ids)
        self.modifiers = [m for m in self.modifiers if m.order_line_id not in doomed]

    async def delete_order_lines(self, order_id: str) -> None:
        await self._enter("delete_order_lines")
        self.order_lines = {
            line_id: line
            for line_id, line in self.order_lines.items()
            if line.order_id != order_id
        }

    async def delete_order(self, order_id: str) -> None:
        await self._enter("delete_order")
        self.orders.pop(order_id, None)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    async def count_order_rows(self, order_id: str) -> StoreCounts:
        line_ids = [l.id for l in self.order_lines.values() if l.order_id == order_id]
        wanted = set(line_ids)
        return StoreCounts(
            orders=1 if order_id in self.orders else 0,
            lines=len(line_ids),
            modifiers=sum(1 for m in self.modifiers if m.order_line_id in wanted),
            line_ids=line_ids,
        )

    async def health_check(self) -> bool:
        return True


def load_demo_data(store: MemoryOrderStore) -> MemoryOrderStore:
    """Seed a development store with one branch, a small menu and a zone."""
    store.add_branch(BranchConfig(
        branch_id="branch-centro",
        store_status=StoreStatus.OPEN,
        auto_accept=False,
        delivery_cost=1200.0,
        delivery_minimum=5000.0,
        pickup_prep_minutes=15,
        delivery_prep_minutes=40,
        latitude=-31.4201,
        longitude=-64.1888,
    ))
    store.add_item(
        CatalogItem(id="burger-classic", name="Classic Burger", base_price=6500.0,
                    category_id="burgers", station="grill"),
        extras={"Cheddar": 800.0, "Bacon": 1000.0},
    )
    store.add_item(
        CatalogItem(id="fries", name="Fries", base_price=2500.0,
                    category_id="sides", station="fryer"),
    )
    store.add_item(
        CatalogItem(id="soda", name="Soda", base_price=1500.0, category_id="drinks"),
    )
    store.add_promotion(ActivePromotion(
        id="promo-line-burger",
        item_id="burger-classic",
        price=5900.0,
        promotion_id="promo-weekdays",
        channels=("webapp",),
        starts_on=date(2020, 1, 1),
    ))
    store.add_zone(DeliveryZone(
        id="zone-north",
        branch_id="branch-centro",
        cost=1500.0,
        minimum_order=8000.0,
        estimated_minutes=50,
    ))
    return store
