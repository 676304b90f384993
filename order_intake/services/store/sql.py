"""
SQL Order Store Implementation

Async SQLAlchemy implementation used when ENV_MODE=staging or production.
Each method opens its own session and commits on its own: calls are
independent single-table operations, exactly like the hosted backend the
intake pipeline was designed for.

The order number is issued by one ``INSERT ... ON CONFLICT DO UPDATE ...
RETURNING`` statement, so the database performs the increment atomically
and concurrent requests can never observe the same value.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, fields
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from order_intake.database import build_session_maker
from order_intake.models import (
    BranchConfigRow,
    BranchOrderSequenceRow,
    CatalogExtraRow,
    CatalogItemRow,
    CustomerProfileRow,
    DeliveryZoneRow,
    OrderLineModifierRow,
    OrderLineRow,
    OrderRow,
    PrepTimeRow,
    PromotionItemRow,
    PromotionRow,
    ServiceType,
)
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

_ORDER_FIELDS = [f.name for f in fields(OrderRecord)]
_UPSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlOrderStore(BaseOrderStore):
    """
    SQLAlchemy-backed order store.

    Args:
        engine: Async engine for PostgreSQL (production) or SQLite (tests)
    """

    def __init__(self, engine: AsyncEngine):
        dialect = engine.dialect.name
        if dialect not in _UPSERT_BY_DIALECT:
            raise ValueError(f"Unsupported database dialect for order sequences: {dialect}")

        self._engine = engine
        self._upsert = _UPSERT_BY_DIALECT[dialect]
        self._session_maker = build_session_maker(engine)

        logger.info(f"SqlOrderStore initialized (dialect={dialect})")

    @property
    def provider_name(self) -> str:
        return "sql"

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._session_maker() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"SQL: {operation} failed - {e}")
                raise StoreError(f"{operation} failed") from e

    # =========================================================================
    # READS
    # =========================================================================

    async def get_branch_config(self, branch_id: str) -> Optional[BranchConfig]:
        async with self._session("get_branch_config") as session:
            row = await session.get(BranchConfigRow, branch_id)
            if row is None:
                return None
            return BranchConfig(
                branch_id=row.branch_id,
                channel_active=row.channel_active,
                store_status=row.store_status,
                pause_message=row.pause_message,
                pickup_enabled=row.pickup_enabled,
                delivery_enabled=row.delivery_enabled,
                auto_accept=row.auto_accept,
                delivery_cost=row.delivery_cost,
                delivery_minimum=row.delivery_minimum,
                pickup_prep_minutes=row.pickup_prep_minutes,
                delivery_prep_minutes=row.delivery_prep_minutes,
                latitude=row.latitude,
                longitude=row.longitude,
            )

    async def fetch_catalog_items(self, item_ids: Iterable[str]) -> list[CatalogItem]:
        async with self._session("fetch_catalog_items") as session:
            result = await session.execute(
                select(CatalogItemRow).where(CatalogItemRow.id.in_(list(set(item_ids))))
            )
            return [
                CatalogItem(
                    id=row.id,
                    name=row.name,
                    base_price=row.base_price,
                    category_id=row.category_id,
                    station=row.station,
                    available_in_channel=row.available_in_channel,
                )
                for row in result.scalars().all()
            ]

    async def fetch_catalog_extras(self, item_ids: Iterable[str]) -> list[CatalogExtra]:
        async with self._session("fetch_catalog_extras") as session:
            result = await session.execute(
                select(CatalogExtraRow).where(CatalogExtraRow.item_id.in_(list(set(item_ids))))
            )
            return [
                CatalogExtra(item_id=row.item_id, name=row.name, price=row.price)
                for row in result.scalars().all()
            ]

    async def fetch_promotions(self, item_ids: Iterable[str]) -> list[ActivePromotion]:
        async with self._session("fetch_promotions") as session:
            result = await session.execute(
                select(PromotionItemRow, PromotionRow)
                .join(PromotionRow, PromotionItemRow.promotion_id == PromotionRow.id)
                .where(PromotionItemRow.item_id.in_(list(set(item_ids))))
            )
            return [
                ActivePromotion(
                    id=line.id,
                    item_id=line.item_id,
                    price=line.promo_price,
                    promotion_id=promo.id,
                    active=promo.active,
                    channels=tuple(promo.channels or ()),
                    starts_on=promo.starts_on,
                    ends_on=promo.ends_on,
                )
                for line, promo in result.all()
            ]

    async def get_delivery_zone(self, zone_id: str) -> Optional[DeliveryZone]:
        async with self._session("get_delivery_zone") as session:
            row = await session.get(DeliveryZoneRow, zone_id)
            if row is None:
                return None
            return DeliveryZone(
                id=row.id,
                branch_id=row.branch_id,
                cost=row.cost,
                minimum_order=row.minimum_order,
                estimated_minutes=row.estimated_minutes,
                is_active=row.is_active,
                name=row.name,
            )

    async def get_customer_by_token(self, token: str) -> Optional[CustomerProfile]:
        async with self._session("get_customer_by_token") as session:
            result = await session.execute(
                select(CustomerProfileRow).where(CustomerProfileRow.session_token == token)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return CustomerProfile(user_id=row.user_id, full_name=row.full_name, phone=row.phone)

    async def get_dynamic_prep_minutes(
        self,
        branch_id: str,
        service_type: ServiceType,
    ) -> Optional[int]:
        async with self._session("get_dynamic_prep_minutes") as session:
            row = await session.get(PrepTimeRow, (branch_id, service_type.value))
            return row.prep_minutes if row is not None else None

    async def find_order_by_idempotency_key(
        self,
        branch_id: str,
        key: str,
    ) -> Optional[OrderRecord]:
        async with self._session("find_order_by_idempotency_key") as session:
            result = await session.execute(
                select(OrderRow).where(
                    OrderRow.branch_id == branch_id,
                    OrderRow.idempotency_key == key,
                )
            )
            row = result.scalar_one_or_none()
            return self._to_order_record(row) if row is not None else None

    async def get_order_by_tracking_code(self, tracking_code: str) -> Optional[OrderRecord]:
        async with self._session("get_order_by_tracking_code") as session:
            result = await session.execute(
                select(OrderRow).where(OrderRow.tracking_code == tracking_code)
            )
            row = result.scalar_one_or_none()
            return self._to_order_record(row) if row is not None else None

    @staticmethod
    def _to_order_record(row: OrderRow) -> OrderRecord:
        return OrderRecord(**{name: getattr(row, name) for name in _ORDER_FIELDS})

    # =========================================================================
    # SEQUENCE
    # =========================================================================

    async def next_order_number(self, branch_id: str) -> int:
        stmt = (
            self._upsert(BranchOrderSequenceRow)
            .values(branch_id=branch_id, last_number=1)
            .on_conflict_do_update(
                index_elements=[BranchOrderSequenceRow.branch_id],
                set_={"last_number": BranchOrderSequenceRow.last_number + 1},
            )
            .returning(BranchOrderSequenceRow.last_number)
        )
        async with self._session("next_order_number") as session:
            result = await session.execute(stmt)
            number = result.scalar_one()
            await session.commit()
            return number

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert_order(self, order: OrderRecord) -> None:
        async with self._session("insert_order") as session:
            session.add(OrderRow(**asdict(order)))
            await session.commit()

    async def insert_order_line(self, line: OrderLineRecord) -> None:
        async with self._session("insert_order_line") as session:
            session.add(OrderLineRow(**asdict(line)))
            await session.commit()

    async def insert_line_modifiers(self, modifiers: list[ModifierRecord]) -> None:
        async with self._session("insert_line_modifiers") as session:
            session.add_all([OrderLineModifierRow(**asdict(m)) for m in modifiers])
            await session.commit()

    async def delete_line_modifiers(self, line_ids: list[str]) -> None:
        if not line_ids:
            return
        async with self._session("delete_line_modifiers") as session:
            await session.execute(
                delete(OrderLineModifierRow).where(OrderLineModifierRow.order_line_id.in_(line_ids))
            )
            await session.commit()

    async def delete_order_lines(self, order_id: str) -> None:
        async with self._session("delete_order_lines") as session:
            await session.execute(delete(OrderLineRow).where(OrderLineRow.order_id == order_id))
            await session.commit()

    async def delete_order(self, order_id: str) -> None:
        async with self._session("delete_order") as session:
            await session.execute(delete(OrderRow).where(OrderRow.id == order_id))
            await session.commit()

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    async def count_order_rows(self, order_id: str) -> StoreCounts:
        async with self._session("count_order_rows") as session:
            orders = await session.scalar(
                select(func.count()).select_from(OrderRow).where(OrderRow.id == order_id)
            )
            line_result = await session.execute(
                select(OrderLineRow.id).where(OrderLineRow.order_id == order_id)
            )
            line_ids = list(line_result.scalars().all())
            modifiers = 0
            if line_ids:
                modifiers = await session.scalar(
                    select(func.count())
                    .select_from(OrderLineModifierRow)
                    .where(OrderLineModifierRow.order_line_id.in_(line_ids))
                )
            return StoreCounts(
                orders=orders or 0,
                lines=len(line_ids),
                modifiers=modifiers or 0,
                line_ids=line_ids,
            )

    async def health_check(self) -> bool:
        try:
            async with self._session("health_check") as session:
                await session.execute(select(func.now()))
            return True
        except StoreError:
            return False
