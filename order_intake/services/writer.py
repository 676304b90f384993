"""
Order Writer

Persists an order as three kinds of rows (order, order lines, line
modifiers) through independent single-table calls. There is no transaction
to roll back, so the writer compensates by hand: if any insert fails, it
deletes everything that may have been written for the order, children
first, and reports ``WriteFailed``. Deletes are idempotent, so compensation
also covers inserts whose outcome is unknown (timeouts).

A failing compensation delete leaves rows behind that only an operator can
reconcile; it is logged at CRITICAL with the order id.
"""

import asyncio
import logging
import uuid
from typing import Awaitable

from order_intake.core.config import get_settings
from order_intake.core.errors import WriteFailed
from order_intake.models import ModifierKind
from order_intake.services.pricing import ResolvedLine
from order_intake.services.store.base import (
    BaseOrderStore,
    ModifierRecord,
    OrderLineRecord,
    OrderRecord,
)

logger = logging.getLogger(__name__)


# =============================================================================
# ROW BUILDERS
# =============================================================================

def build_line_rows(
    order_id: str,
    resolved_lines: list[ResolvedLine],
    default_station: str,
) -> list[tuple[OrderLineRecord, list[ModifierRecord]]]:
    """
    Turn priced lines into order-line rows and their modifier rows.

    Extras produce one modifier row per unit; inclusions of more than one
    unit are described as "{n}x {name}"; removals are stored verbatim.
    """
    rows = []
    for position, resolved in enumerate(resolved_lines, start=1):
        request = resolved.request
        line = OrderLineRecord(
            id=str(uuid.uuid4()),
            order_id=order_id,
            position=position,
            item_id=resolved.item.id,
            name=resolved.item.name,
            quantity=resolved.quantity,
            unit_price=resolved.unit_price,
            extras_total=resolved.extras_total,
            subtotal=resolved.subtotal,
            station=resolved.item.station or default_station,
            category_id=resolved.item.category_id,
            promotion_id=resolved.promotion.promotion_id if resolved.promotion else None,
            promotion_line_id=resolved.promotion.id if resolved.promotion else None,
            note=request.note,
        )

        modifiers = []
        for extra in resolved.extras:
            for _ in range(extra.quantity):
                modifiers.append(ModifierRecord(
                    order_line_id=line.id,
                    kind=ModifierKind.EXTRA,
                    description=extra.name,
                    extra_price=extra.unit_price,
                ))
        for inclusion in request.inclusions:
            count = max(1, inclusion.quantity or 1)
            modifiers.append(ModifierRecord(
                order_line_id=line.id,
                kind=ModifierKind.INCLUSION,
                description=f"{count}x {inclusion.name}" if count > 1 else inclusion.name,
            ))
        for removal in request.removals:
            if removal.strip():
                modifiers.append(ModifierRecord(
                    order_line_id=line.id,
                    kind=ModifierKind.REMOVAL,
                    description=removal.strip(),
                ))

        rows.append((line, modifiers))
    return rows


# =============================================================================
# WRITER
# =============================================================================

class OrderWriter:
    """Ordered order → lines → modifiers write with delete-on-failure."""

    def __init__(self, store: BaseOrderStore):
        self.store = store
        self.timeout = get_settings().write_timeout_seconds

    async def _bounded(self, call: Awaitable[None]) -> None:
        await asyncio.wait_for(call, timeout=self.timeout)

    async def write(
        self,
        order: OrderRecord,
        lines: list[tuple[OrderLineRecord, list[ModifierRecord]]],
    ) -> None:
        """
        Write the order and all its children, or nothing at all.

        Raises:
            WriteFailed: A write failed; every row of the order was removed
                (or, if cleanup also failed, reported for reconciliation)
        """
        step = "order"
        attempted_line_ids: list[str] = []

        try:
            await self._bounded(self.store.insert_order(order))

            step = "lines"
            for line, _ in lines:
                attempted_line_ids.append(line.id)
                await self._bounded(self.store.insert_order_line(line))

            step = "modifiers"
            for line, modifiers in lines:
                if modifiers:
                    await self._bounded(self.store.insert_line_modifiers(modifiers))

        except Exception as e:
            reason = "timeout" if isinstance(e, asyncio.TimeoutError) else repr(e)
            logger.error(
                f"Write of order {order.id} (#{order.order_number}, branch {order.branch_id}) "
                f"failed at {step}: {reason}; compensating"
            )
            clean = await self._compensate(order, attempted_line_ids)
            raise WriteFailed(
                _FAILURE_MESSAGES[step],
                step=step,
                compensated=clean,
            ) from e

        logger.debug(f"Order {order.id} written with {len(lines)} lines")

    async def _compensate(self, order: OrderRecord, line_ids: list[str]) -> bool:
        """Delete modifiers, lines and the order row; True when all deletes succeeded."""
        clean = True
        steps = (
            ("modifiers", self.store.delete_line_modifiers, line_ids),
            ("lines", self.store.delete_order_lines, order.id),
            ("order", self.store.delete_order, order.id),
        )
        for name, delete, argument in steps:
            try:
                await self._bounded(delete(argument))
            except Exception as e:
                clean = False
                logger.critical(
                    f"Compensation failed deleting {name} of order {order.id} "
                    f"(#{order.order_number}, branch {order.branch_id}): {e!r}. "
                    f"Manual reconciliation required."
                )
        if clean:
            logger.info(f"Compensated partial write of order {order.id}")
        return clean


_FAILURE_MESSAGES = {
    "order": "Could not create the order",
    "lines": "Could not create the order items",
    "modifiers": "Could not save the order item modifiers",
}
