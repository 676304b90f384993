"""
                        Services Module

Contains the order intake pipeline and its collaborators. Collaborators
that talk to the outside world follow the hybrid pattern: a Mock/in-memory
implementation for development and a Real one for staging/production.

Services:
    - store: Catalog, branch configuration, sequence and order persistence
    - geo: Google Maps geodistance delivery pricing
    - catalog / pricing / delivery / sequence / lifecycle / writer:
      the pipeline stages
    - intake: the orchestrator that runs one order through the stages
"""

import logging
from functools import lru_cache

from order_intake.services.geo import get_geo_service
from order_intake.services.intake import IntakeResult, IntakeState, OrderIntake
from order_intake.services.store import get_order_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_intake_service() -> OrderIntake:
    """Orchestrator wired to the configured store and geo collaborator."""
    store = get_order_store()
    geo_service = get_geo_service()
    logger.info(
        f"Order intake wired: store={store.provider_name}, geo={geo_service.provider_name}"
    )
    return OrderIntake(store, geo_service)


def reset_intake_service() -> None:
    """Clear the cached orchestrator instance."""
    get_intake_service.cache_clear()


__all__ = [
    "get_intake_service",
    "reset_intake_service",
    "IntakeResult",
    "IntakeState",
    "OrderIntake",
]
