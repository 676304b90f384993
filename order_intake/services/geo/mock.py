"""
Mock Geo Service Implementation

Prices deliveries from straight-line (haversine) distance without calling
any external API. Used in development mode (ENV_MODE=development) and tests.

Behavior:
    - Distance is the great-circle distance from the branch
    - Optional simulated latency and random failure rate
"""

import asyncio
import logging
import random

from order_intake.core.config import get_settings
from order_intake.services.geo.base import (
    BaseGeoService,
    DeliveryQuoteResult,
    haversine_km,
    price_for_distance,
)
from order_intake.services.store.base import BranchConfig

logger = logging.getLogger(__name__)


class MockGeoService(BaseGeoService):
    """
    Mock implementation of the geodistance pricing collaborator.

    Attributes:
        failure_rate: Probability of a simulated provider failure (0.0-1.0)
        min_latency: Minimum response time in seconds
        max_latency: Maximum response time in seconds
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.settings = get_settings()

        logger.info(
            f"MockGeoService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"radius={self.settings.delivery_radius_km}km)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def quote(
        self,
        branch: BranchConfig,
        lat: float,
        lng: float,
    ) -> DeliveryQuoteResult:
        await self._simulate_latency()

        if self._should_fail():
            logger.debug("Mock: Simulated geo provider failure")
            return DeliveryQuoteResult.unavailable(
                "provider_error",
                error_message="Delivery pricing temporarily unavailable",
            )

        blocked = self.precheck(branch)
        if blocked is not None:
            return blocked

        distance_km = haversine_km(branch.latitude, branch.longitude, lat, lng)
        if distance_km > self.settings.delivery_radius_km:
            logger.debug(f"Mock: {distance_km:.1f}km is out of radius")
            return DeliveryQuoteResult.unavailable("out_of_radius")

        return DeliveryQuoteResult(
            available=True,
            cost=price_for_distance(distance_km, self.settings),
            distance_km=round(distance_km, 1),
        )

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        return True
