"""
Sequence Allocator

Issues per-branch order numbers. The increment itself is delegated to the
store's atomic primitive; this module only bounds the call and turns its
failures into the allocator's own error kinds. No order is ever written
without a number, so every failure here is fatal to the request.
"""

import asyncio
import logging

from order_intake.core.config import get_settings
from order_intake.core.errors import SequenceUnavailable, UpstreamTimeout
from order_intake.services.store.base import BaseOrderStore, StoreError

logger = logging.getLogger(__name__)


class SequenceAllocator:

    def __init__(self, store: BaseOrderStore):
        self.store = store
        self.timeout = get_settings().sequence_timeout_seconds

    async def allocate(self, branch_id: str) -> int:
        """
        Next order number for ``branch_id``.

        Numbers are unique and increasing per branch; gaps are possible when
        a request fails after allocation.

        Raises:
            UpstreamTimeout: The increment did not finish in time
            SequenceUnavailable: The storage layer rejected the increment
        """
        try:
            number = await asyncio.wait_for(
                self.store.next_order_number(branch_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Order number allocation timed out for branch {branch_id}")
            raise UpstreamTimeout(
                "Could not generate an order number in time, please retry",
                component="sequence",
            )
        except StoreError as e:
            logger.error(f"Order number allocation failed for branch {branch_id} - {e}")
            raise SequenceUnavailable("Could not generate an order number")

        logger.debug(f"Allocated order number {number} for branch {branch_id}")
        return number
