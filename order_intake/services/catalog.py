"""
Catalog Resolver

Loads the authoritative catalog records for the items referenced by a cart:
items, the extras each item can carry, and the promotion lines that are
eligible in this channel today. It is the only source of unit prices.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from order_intake.core.config import get_settings
from order_intake.core.errors import NotFound
from order_intake.core.timeouts import bounded_read
from order_intake.services.store.base import (
    ActivePromotion,
    BaseOrderStore,
    CatalogExtra,
    CatalogItem,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolvedCatalog:
    """
    Lookups produced for one request.

    Attributes:
        items: item id → CatalogItem
        promotions: promotion line id → eligible ActivePromotion
        extras: (item id, lower-cased extra name) → CatalogExtra
    """
    items: dict[str, CatalogItem] = field(default_factory=dict)
    promotions: dict[str, ActivePromotion] = field(default_factory=dict)
    extras: dict[tuple[str, str], CatalogExtra] = field(default_factory=dict)

    def best_promotion(self, item_id: str) -> Optional[ActivePromotion]:
        """Lowest-priced eligible promotion for the item, if any."""
        candidates = [p for p in self.promotions.values() if p.item_id == item_id]
        if not candidates:
            return None
        return min(candidates, key=lambda p: (p.price, p.id))

    def extra(self, item_id: str, name: str) -> Optional[CatalogExtra]:
        return self.extras.get((item_id, name.strip().lower()))


class CatalogResolver:
    """Read-only resolution of catalog data for a set of item ids."""

    def __init__(self, store: BaseOrderStore, channel: Optional[str] = None):
        settings = get_settings()
        self.store = store
        self.channel = channel or settings.order_channel
        self.timeout = settings.catalog_timeout_seconds

    async def resolve(
        self,
        item_ids: Iterable[str],
        today: Optional[date] = None,
    ) -> ResolvedCatalog:
        """
        Fetch items, extras and promotions for ``item_ids``.

        Raises:
            NotFound: An id has no catalog item
            UpstreamTimeout: A catalog read exceeded its bound
        """
        wanted = sorted(set(item_ids))
        today = today or date.today()

        items, extras, promotions = await asyncio.gather(
            bounded_read(self.store.fetch_catalog_items(wanted), self.timeout, "catalog"),
            bounded_read(self.store.fetch_catalog_extras(wanted), self.timeout, "catalog"),
            bounded_read(self.store.fetch_promotions(wanted), self.timeout, "promotions"),
        )

        catalog = ResolvedCatalog(items={item.id: item for item in items})

        missing = [i for i in wanted if i not in catalog.items]
        if missing:
            raise NotFound(f"Product not found: {', '.join(missing)}", item_ids=missing)

        for extra in extras:
            catalog.extras[(extra.item_id, extra.name.strip().lower())] = extra

        for promotion in promotions:
            if promotion.is_eligible(self.channel, today):
                catalog.promotions[promotion.id] = promotion

        logger.debug(
            f"Catalog resolved: {len(catalog.items)} items, "
            f"{len(catalog.extras)} extras, {len(catalog.promotions)} eligible promotions"
        )
        return catalog
