"""
Bounded collaborator calls.

Every external call of the intake pipeline goes through ``bounded_read`` so
that a slow collaborator surfaces as that component's typed failure instead
of blocking the request.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from order_intake.core.errors import StoreError, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded_read(call: Awaitable[T], timeout: float, component: str) -> T:
    """
    Await a read collaborator within ``timeout`` seconds.

    Raises:
        UpstreamTimeout: The call did not finish in time
        UpstreamUnavailable: The store reported a failure
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{component} timed out after {timeout}s")
        raise UpstreamTimeout(
            f"{component} did not respond in time, please retry",
            component=component,
        )
    except StoreError as e:
        logger.error(f"{component} failed - {e}")
        raise UpstreamUnavailable(
            f"{component} is unavailable, please retry",
            component=component,
        )
