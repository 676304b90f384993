"""Per-branch order numbering."""

import asyncio

import pytest

from order_intake.core.config import get_settings
from order_intake.core.errors import SequenceUnavailable, UpstreamTimeout
from order_intake.services.sequence import SequenceAllocator
from order_intake.services.store import MemoryOrderStore


async def test_first_number_is_one_and_increments(store):
    allocator = SequenceAllocator(store)
    assert [await allocator.allocate("branch-1") for _ in range(3)] == [1, 2, 3]


async def test_branches_are_numbered_independently(store):
    allocator = SequenceAllocator(store)
    await allocator.allocate("branch-1")
    await allocator.allocate("branch-1")
    assert await allocator.allocate("branch-2") == 1


async def test_concurrent_allocations_are_distinct():
    store = MemoryOrderStore(min_latency=0.001, max_latency=0.01)
    allocator = SequenceAllocator(store)

    numbers = await asyncio.gather(*[allocator.allocate("branch-1") for _ in range(100)])

    assert sorted(numbers) == list(range(1, 101))


async def test_store_failure_is_sequence_unavailable(store):
    store.fail_operation("next_order_number")
    with pytest.raises(SequenceUnavailable) as exc:
        await SequenceAllocator(store).allocate("branch-1")
    assert exc.value.http_status == 500
    assert exc.value.retryable


async def test_slow_increment_times_out(store, monkeypatch):
    monkeypatch.setenv("SEQUENCE_TIMEOUT_SECONDS", "0.05")
    get_settings.cache_clear()
    store.delay_operation("next_order_number", 0.5)

    with pytest.raises(UpstreamTimeout) as exc:
        await SequenceAllocator(store).allocate("branch-1")
    assert exc.value.payload == {"component": "sequence"}
