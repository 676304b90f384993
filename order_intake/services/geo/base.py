"""
Geo Delivery Quote Abstract Base Class

Defines the interface of the geodistance pricing collaborator. Given a
branch and the customer's coordinates it answers ``{available, cost}``:
whether the branch delivers there and what it costs.

Both MockGeoService and GoogleGeoService implement it; the pricing rule
(base price up to a base distance, then a per-kilometre surcharge) is shared.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from order_intake.core.config import Settings
from order_intake.services.store.base import BranchConfig


EARTH_RADIUS_KM = 6371.0


@dataclass
class DeliveryQuoteResult:
    """
    Standardized answer of the geodistance pricing collaborator.

    Attributes:
        available: Whether the branch delivers to the coordinates
        cost: Delivery price (only when available)
        distance_km: Route or straight-line distance
        reason: Machine-readable reason when not available
        error_message: Description when the provider failed
    """
    available: bool
    cost: Optional[float] = None
    distance_km: Optional[float] = None
    reason: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def unavailable(cls, reason: str, error_message: Optional[str] = None) -> "DeliveryQuoteResult":
        return cls(available=False, reason=reason, error_message=error_message)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def price_for_distance(distance_km: float, settings: Settings) -> float:
    """Base price up to the base distance, then a surcharge per extra km, rounded."""
    extra_km = max(0.0, distance_km - settings.delivery_base_distance_km)
    return float(round(settings.delivery_base_price + extra_km * settings.delivery_price_per_extra_km))


class BaseGeoService(ABC):
    """
    Abstract base class for geodistance delivery pricing.

    Example:
        >>> service = get_geo_service()
        >>> result = await service.quote(branch, lat=-31.41, lng=-64.18)
        >>> if result.available:
        ...     print(result.cost)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the geo provider (e.g. "mock", "google")."""
        pass

    @abstractmethod
    async def quote(
        self,
        branch: BranchConfig,
        lat: float,
        lng: float,
    ) -> DeliveryQuoteResult:
        """
        Price a delivery from ``branch`` to the given coordinates.

        Returns an unavailable result (never raises) when the branch does
        not deliver, is missing its location, or the address is out of range.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    @staticmethod
    def precheck(branch: BranchConfig) -> Optional[DeliveryQuoteResult]:
        """Shared availability checks done before any distance lookup."""
        if not branch.delivery_enabled:
            return DeliveryQuoteResult.unavailable("delivery_disabled")
        if branch.latitude is None or branch.longitude is None:
            return DeliveryQuoteResult.unavailable("branch_location_unknown")
        return None
