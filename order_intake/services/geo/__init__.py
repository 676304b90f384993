"""
Geo Service Factory

Provides a single entry point for obtaining the geodistance delivery
pricing collaborator. Automatically selects Mock or Google Maps based on
ENV_MODE configuration.

Usage:
    from order_intake.services.geo import get_geo_service

    geo_service = get_geo_service()
    result = await geo_service.quote(branch, lat=-31.41, lng=-64.18)
"""

import logging
from functools import lru_cache

from order_intake.core.config import get_settings
from order_intake.services.geo.base import (
    BaseGeoService,
    DeliveryQuoteResult,
    haversine_km,
    price_for_distance,
)
from order_intake.services.geo.mock import MockGeoService
from order_intake.services.geo.google import GoogleGeoService

logger = logging.getLogger(__name__)


@lru_cache()
def get_geo_service() -> BaseGeoService:
    """
    Get the configured geo service instance.

    Raises:
        ValueError: If production mode but Google API key not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Geo Service: Using MockGeoService (development mode)")
        return MockGeoService(
            failure_rate=0.05,  # 5% simulated failures
            min_latency=0.05,
            max_latency=0.2,
        )

    logger.info(
        f"Geo Service: Using GoogleGeoService "
        f"({settings.env_mode.value} mode)"
    )
    return GoogleGeoService()


def reset_geo_service() -> None:
    """Clear the cached geo service instance."""
    get_geo_service.cache_clear()
    logger.debug("Geo service cache cleared")


__all__ = [
    "get_geo_service",
    "reset_geo_service",
    "BaseGeoService",
    "DeliveryQuoteResult",
    "haversine_km",
    "price_for_distance",
    "MockGeoService",
    "GoogleGeoService",
]
