"""
Google Maps Geo Service Implementation

Production delivery pricing using the Google Maps Distance Matrix API for
real driving distance. Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - GOOGLE_MAPS_API_KEY must be set in environment
    - Distance Matrix API must be enabled in Google Cloud Console

When the route lookup fails the service falls back to straight-line
distance, so a Google outage degrades accuracy rather than availability.
"""

import asyncio
import logging
from typing import Optional

import googlemaps
from googlemaps.exceptions import ApiError, Timeout, TransportError

from order_intake.core.config import get_settings
from order_intake.services.geo.base import (
    BaseGeoService,
    DeliveryQuoteResult,
    haversine_km,
    price_for_distance,
)
from order_intake.services.store.base import BranchConfig

logger = logging.getLogger(__name__)


class GoogleGeoService(BaseGeoService):
    """
    Production Google Maps delivery pricing.

    Configuration:
        Requires GOOGLE_MAPS_API_KEY environment variable.
    """

    def __init__(self, client: Optional[googlemaps.Client] = None):
        """
        Initialize Google Maps client with API key.

        Raises:
            ValueError: If GOOGLE_MAPS_API_KEY is not configured
        """
        self.settings = get_settings()

        if client is None:
            if not self.settings.google_maps_api_key:
                raise ValueError(
                    "GOOGLE_MAPS_API_KEY is required for production mode. "
                    "Set it in your .env file or environment variables."
                )
            client = googlemaps.Client(
                key=self.settings.google_maps_api_key,
                timeout=self.settings.delivery_quote_timeout_seconds,
            )

        self._client = client
        logger.info("GoogleGeoService initialized")

    @property
    def provider_name(self) -> str:
        return "google"

    async def _driving_distance(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
    ) -> Optional[float]:
        """
        Driving distance in km, or None on failure.

        The googlemaps client is synchronous, so it runs in a worker thread.
        """
        try:
            result = await asyncio.to_thread(
                self._client.distance_matrix,
                origins=[origin],
                destinations=[destination],
                mode="driving",
                units="metric",
            )
        except Timeout:
            logger.error("Google: Distance Matrix timeout")
            return None
        except ApiError as e:
            logger.error(f"Google: API error - {e}")
            return None
        except TransportError as e:
            logger.error(f"Google: Transport error - {e}")
            return None

        try:
            element = result["rows"][0]["elements"][0]
        except (KeyError, IndexError):
            logger.error("Google: Distance Matrix returned no elements")
            return None

        if element.get("status") != "OK":
            logger.warning(f"Google: Route status {element.get('status')}")
            return None

        return element["distance"]["value"] / 1000

    async def quote(
        self,
        branch: BranchConfig,
        lat: float,
        lng: float,
    ) -> DeliveryQuoteResult:
        blocked = self.precheck(branch)
        if blocked is not None:
            return blocked

        distance_km = await self._driving_distance((branch.latitude, branch.longitude), (lat, lng))

        if distance_km is None:
            distance_km = haversine_km(branch.latitude, branch.longitude, lat, lng)
            logger.info(f"Google: Falling back to straight-line distance ({distance_km:.1f}km)")

        if distance_km > self.settings.delivery_radius_km:
            return DeliveryQuoteResult.unavailable("out_of_radius")

        return DeliveryQuoteResult(
            available=True,
            cost=price_for_distance(distance_km, self.settings),
            distance_km=round(distance_km, 1),
        )

    async def health_check(self) -> bool:
        """Verify Distance Matrix connectivity with a trivial request."""
        route = await self._driving_distance((0.0, 0.0), (0.0, 0.0))
        return route is not None
