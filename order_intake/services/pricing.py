"""
Pricing Engine

Pure functions turning cart lines plus resolved catalog data into line and
order subtotals. Client-claimed prices never enter the computation.

Unit price precedence for a line:
    1. An explicit promotion line id must be an eligible promotion for the
       same item; the line then pays the lower of that price and the best
       eligible promotion for the item.
    2. A line tagged ``promo`` without a promotion line id is rejected.
    3. Unless the line opts out with ``exclude_promotions``, the lowest
       eligible promotion price applies.
    4. Otherwise the catalog base price.
"""

from dataclasses import dataclass, field
from typing import Optional

from order_intake.core.errors import InvalidPromotion, NotFound
from order_intake.schemas import OrderLineCreate
from order_intake.services.catalog import ResolvedCatalog
from order_intake.services.store.base import ActivePromotion, CatalogItem


@dataclass(frozen=True)
class PricedExtra:
    name: str
    unit_price: float
    quantity: int

    @property
    def total(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class ResolvedLine:
    """A cart line with its authoritative prices attached."""
    request: OrderLineCreate
    item: CatalogItem
    quantity: int
    unit_price: float
    extras: list[PricedExtra] = field(default_factory=list)
    extras_total: float = 0.0
    subtotal: float = 0.0
    promotion: Optional[ActivePromotion] = None


def money(amount: float) -> float:
    return round(float(amount), 2)


def resolve_unit_price(
    line: OrderLineCreate,
    item: CatalogItem,
    catalog: ResolvedCatalog,
) -> tuple[float, Optional[ActivePromotion]]:
    """Apply the precedence rules; returns the unit price and the winning promotion."""
    best = catalog.best_promotion(item.id)

    if line.promotion_line_id:
        referenced = catalog.promotions.get(line.promotion_line_id)
        if referenced is None or referenced.item_id != item.id:
            raise InvalidPromotion(
                f'Invalid promotion for "{line.label}"',
                item_id=item.id,
                promotion_line_id=line.promotion_line_id,
            )
        winner = best if best is not None and best.price < referenced.price else referenced
        return winner.price, winner

    if line.line_kind == "promo":
        raise InvalidPromotion(
            f'Missing promotion reference for "{line.label}"',
            item_id=item.id,
        )

    if not line.exclude_promotions and best is not None:
        return best.price, best

    return item.base_price, None


def price_extras(line: OrderLineCreate, catalog: ResolvedCatalog) -> list[PricedExtra]:
    """Price each requested extra from the catalog; counts are clamped to at least 1."""
    priced = []
    for extra in line.extras:
        offered = catalog.extra(line.item_id, extra.name)
        if offered is None:
            raise NotFound(
                f'Extra "{extra.name}" is not offered for "{line.label}"',
                item_id=line.item_id,
                extra=extra.name,
            )
        priced.append(PricedExtra(
            name=offered.name,
            unit_price=max(0.0, offered.price),
            quantity=max(1, extra.quantity or 1),
        ))
    return priced


def price_line(line: OrderLineCreate, catalog: ResolvedCatalog) -> ResolvedLine:
    """Price one line: (unit price + extras total) × quantity, never negative."""
    item = catalog.items[line.item_id]
    unit_price, promotion = resolve_unit_price(line, item, catalog)
    unit_price = max(0.0, unit_price)
    extras = price_extras(line, catalog)
    extras_total = money(sum(e.total for e in extras))
    quantity = max(1, line.quantity)

    return ResolvedLine(
        request=line,
        item=item,
        quantity=quantity,
        unit_price=money(unit_price),
        extras=extras,
        extras_total=extras_total,
        subtotal=money((unit_price + extras_total) * quantity),
        promotion=promotion,
    )


def price_order(
    lines: list[OrderLineCreate],
    catalog: ResolvedCatalog,
) -> tuple[list[ResolvedLine], float]:
    """Price every line and return them with the order subtotal."""
    resolved = [price_line(line, catalog) for line in lines]
    return resolved, money(sum(r.subtotal for r in resolved))
