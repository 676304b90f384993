"""
Delivery Cost Resolver

Computes the delivery surcharge for a request. Strategies, in order:

    1. Geocoded: coordinates present → geodistance pricing collaborator.
       If it declines or fails, the client's own estimate is used as a
       degraded fallback (0 when absent); the quote is flagged ``degraded``.
    2. Zone: zone id present → zone table, with the zone's minimum order.
    3. Static: the branch's flat delivery cost and minimum order.

A client-supplied cost is never authoritative; it only ever appears as the
degraded fallback of strategy 1.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from order_intake.core.config import get_settings
from order_intake.core.errors import BelowMinimum, NotFound, ZoneInactive
from order_intake.core.timeouts import bounded_read
from order_intake.models import ServiceType
from order_intake.schemas import OrderCreate
from order_intake.services.geo.base import BaseGeoService
from order_intake.services.store.base import BaseOrderStore, BranchConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryQuote:
    """
    Delivery surcharge resolved once per request.

    Attributes:
        amount: Surcharge added to the order subtotal
        strategy: "geocoded", "zone", "static" or "none"
        zone_id: Zone that priced the delivery, if any
        prep_minutes_override: Zone-specific time estimate
        degraded: True when the geodistance collaborator could not price it
        distance_km: Distance reported by the collaborator (or the client)
    """
    amount: float = 0.0
    strategy: str = "none"
    zone_id: Optional[str] = None
    prep_minutes_override: Optional[int] = None
    degraded: bool = False
    distance_km: Optional[float] = None


NO_DELIVERY = DeliveryQuote()


def _enforce_minimum(subtotal: float, minimum: Optional[float], scope: str) -> None:
    if minimum and subtotal < minimum:
        raise BelowMinimum(
            f"The minimum order for {scope} is ${minimum:,.2f}",
            minimum=minimum,
            subtotal=subtotal,
        )


class DeliveryCostResolver:
    """Resolves a DeliveryQuote from coordinates, a zone, or branch defaults."""

    def __init__(self, store: BaseOrderStore, geo_service: BaseGeoService):
        settings = get_settings()
        self.store = store
        self.geo_service = geo_service
        self.quote_timeout = settings.delivery_quote_timeout_seconds
        self.read_timeout = settings.catalog_timeout_seconds

    async def resolve(
        self,
        request: OrderCreate,
        branch: BranchConfig,
        subtotal: float,
    ) -> DeliveryQuote:
        """
        Raises:
            NotFound: Zone id unknown or owned by another branch
            ZoneInactive: Zone disabled
            BelowMinimum: Subtotal under the zone or branch minimum
        """
        if request.service_type != ServiceType.DELIVERY:
            return NO_DELIVERY

        if request.has_coordinates:
            return await self._geocoded(request, branch)
        if request.delivery_zone_id:
            return await self._zone(request.delivery_zone_id, branch, subtotal)
        return self._static(branch, subtotal)

    async def _geocoded(self, request: OrderCreate, branch: BranchConfig) -> DeliveryQuote:
        failure = None
        try:
            result = await asyncio.wait_for(
                self.geo_service.quote(branch, request.delivery_lat, request.delivery_lng),
                timeout=self.quote_timeout,
            )
            if result.available and result.cost is not None:
                return DeliveryQuote(
                    amount=max(0.0, result.cost),
                    strategy="geocoded",
                    distance_km=result.distance_km,
                )
            failure = result.reason or "unavailable"
        except asyncio.TimeoutError:
            failure = "timeout"
        except Exception as e:
            failure = f"error: {e}"

        fallback = request.delivery_cost_estimate or 0.0
        logger.warning(
            f"Delivery quote degraded for branch {branch.branch_id} "
            f"({failure}); using fallback cost {fallback}"
        )
        return DeliveryQuote(
            amount=max(0.0, fallback),
            strategy="geocoded",
            degraded=True,
            distance_km=request.delivery_distance_km,
        )

    async def _zone(self, zone_id: str, branch: BranchConfig, subtotal: float) -> DeliveryQuote:
        zone = await bounded_read(
            self.store.get_delivery_zone(zone_id),
            self.read_timeout,
            "delivery zones",
        )
        if zone is None or zone.branch_id != branch.branch_id:
            raise NotFound("Delivery zone not found", zone_id=zone_id)
        if not zone.is_active:
            raise ZoneInactive("This delivery zone is not available", zone_id=zone_id)

        _enforce_minimum(subtotal, zone.minimum_order, "this zone")

        return DeliveryQuote(
            amount=max(0.0, zone.cost or 0.0),
            strategy="zone",
            zone_id=zone.id,
            prep_minutes_override=zone.estimated_minutes,
        )

    def _static(self, branch: BranchConfig, subtotal: float) -> DeliveryQuote:
        _enforce_minimum(subtotal, branch.delivery_minimum, "delivery")
        return DeliveryQuote(
            amount=max(0.0, branch.delivery_cost or 0.0),
            strategy="static",
        )
