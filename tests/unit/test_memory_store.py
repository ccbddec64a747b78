"""
Unit tests for the bounded in-process counter store.

Test categories:
- CounterStore contract (get / set / increment)
- TTL expiry (passive and swept)
- LRU eviction under capacity
- Observer notifications
- Concurrent increments
"""

import asyncio

import pytest

from quotagate.core.errors import ConfigurationError
from quotagate.core.storage.base import CounterRecord, EvictionReason
from quotagate.core.storage.memory import MemoryStore


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(clock) -> MemoryStore:
    """Create a fresh store with the sweep disabled and a fake clock."""
    return MemoryStore(max_size=100, cleanup_interval=0, clock=clock)


# =============================================================================
# Contract
# =============================================================================


class TestContract:
    @pytest.mark.asyncio
    async def test_get_missing_key_is_none(self, store: MemoryStore) -> None:
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_first_increment_returns_one(self, store: MemoryStore) -> None:
        assert await store.increment("k", ttl=60_000) == 1
        assert await store.get("k") == 1

    @pytest.mark.asyncio
    async def test_increment_counts_up(self, store: MemoryStore) -> None:
        values = [await store.increment("k", ttl=60_000) for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_set_installs_value(self, store: MemoryStore) -> None:
        await store.set("k", 42, ttl=60_000)
        assert await store.get("k") == 42
        assert await store.increment("k", ttl=60_000) == 43

    @pytest.mark.asyncio
    async def test_set_with_non_positive_ttl_acts_as_delete(self, store: MemoryStore) -> None:
        await store.increment("k", ttl=60_000)

        await store.set("k", 5, ttl=0)

        assert await store.get("k") is None
        assert not store.has("k")

    @pytest.mark.asyncio
    async def test_increment_with_non_positive_ttl_does_not_persist(self, store: MemoryStore) -> None:
        assert await store.increment("k", ttl=0) == 1
        assert await store.get("k") is None


# =============================================================================
# Expiry
# =============================================================================


class TestExpiry:
    @pytest.mark.asyncio
    async def test_record_expires_exactly_at_deadline(self, store: MemoryStore, clock) -> None:
        await store.increment("k", ttl=1_000)

        clock.advance(999)
        assert await store.get("k") == 1

        clock.advance(1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_expired_read_expunges_key(self, store: MemoryStore, clock) -> None:
        await store.increment("k", ttl=1_000)
        clock.advance(1_000)

        await store.get("k")

        assert store.size == 0

    @pytest.mark.asyncio
    async def test_increment_after_expiry_starts_from_one(self, store: MemoryStore, clock) -> None:
        await store.increment("k", ttl=1_000)
        await store.increment("k", ttl=1_000)
        clock.advance(1_000)

        assert await store.increment("k", ttl=1_000) == 1

    @pytest.mark.asyncio
    async def test_increment_reanchors_ttl(self, store: MemoryStore, clock) -> None:
        await store.increment("k", ttl=1_000)
        clock.advance(800)
        await store.increment("k", ttl=1_000)
        clock.advance(800)

        assert await store.get("k") == 2

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired(self, store: MemoryStore, clock) -> None:
        await store.increment("short", ttl=1_000)
        await store.increment("long", ttl=10_000)
        clock.advance(1_000)

        removed = store.cleanup()

        assert removed == 1
        assert store.keys() == ["long"]

    @pytest.mark.asyncio
    async def test_background_sweep_removes_expired_entries(self) -> None:
        store = MemoryStore(max_size=10, cleanup_interval=20)
        await store.set("k", 1, ttl=1)

        await store.start_cleanup_task()
        try:
            await asyncio.sleep(0.1)
            assert store.size == 0
            assert store.get_stats()["cleanup_running"]
        finally:
            await store.close()

        assert not store.get_stats()["cleanup_running"]

    @pytest.mark.asyncio
    async def test_first_store_call_starts_sweep(self) -> None:
        store = MemoryStore(max_size=10, cleanup_interval=20)
        assert not store.get_stats()["cleanup_running"]

        await store.set("k", 1, ttl=1)
        try:
            assert store.get_stats()["cleanup_running"]
            await asyncio.sleep(0.1)
            assert store.size == 0
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_disabled_sweep_never_starts(self, store: MemoryStore) -> None:
        await store.start_cleanup_task()
        await store.increment("k", ttl=1_000)
        assert not store.get_stats()["cleanup_running"]


# =============================================================================
# Eviction
# =============================================================================


class TestEviction:
    @pytest.mark.asyncio
    async def test_least_recently_inserted_is_evicted(self, clock) -> None:
        store = MemoryStore(max_size=2, cleanup_interval=0, clock=clock)

        await store.increment("K1", ttl=60_000)
        await store.increment("K2", ttl=60_000)
        await store.increment("K3", ttl=60_000)

        assert not store.has("K1")
        assert store.has("K2")
        assert store.has("K3")

    @pytest.mark.asyncio
    async def test_read_refreshes_recency(self, clock) -> None:
        store = MemoryStore(max_size=2, cleanup_interval=0, clock=clock)

        await store.increment("K1", ttl=60_000)
        await store.increment("K2", ttl=60_000)
        await store.get("K1")
        await store.increment("K3", ttl=60_000)

        assert store.has("K1")
        assert not store.has("K2")
        assert store.has("K3")

    @pytest.mark.asyncio
    async def test_has_does_not_refresh_recency(self, clock) -> None:
        store = MemoryStore(max_size=2, cleanup_interval=0, clock=clock)

        await store.increment("K1", ttl=60_000)
        await store.increment("K2", ttl=60_000)
        store.has("K1")
        await store.increment("K3", ttl=60_000)

        assert not store.has("K1")

    @pytest.mark.asyncio
    async def test_unexpired_entry_can_be_evicted(self, clock) -> None:
        store = MemoryStore(max_size=1, cleanup_interval=0, clock=clock)

        await store.increment("a", ttl=3_600_000)
        await store.increment("b", ttl=3_600_000)

        assert await store.get("a") is None
        assert store.get_stats()["evictions"] == 1

    def test_max_size_must_be_positive(self) -> None:
        with pytest.raises(ConfigurationError):
            MemoryStore(max_size=0)


# =============================================================================
# Observer
# =============================================================================


class TestObserver:
    @pytest.mark.asyncio
    async def test_observer_sees_capacity_and_expiry(self, clock) -> None:
        events: list[tuple[str, CounterRecord, EvictionReason]] = []
        store = MemoryStore(
            max_size=1,
            cleanup_interval=0,
            on_evict=lambda key, record, reason: events.append((key, record, reason)),
            clock=clock,
        )

        await store.increment("a", ttl=1_000)
        await store.increment("b", ttl=1_000)
        clock.advance(1_000)
        await store.get("b")

        assert [(key, reason) for key, _, reason in events] == [
            ("a", EvictionReason.CAPACITY),
            ("b", EvictionReason.EXPIRED),
        ]
        assert events[0][1].value == 1

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_store(self, clock) -> None:
        def explode(key: str, record: CounterRecord, reason: EvictionReason) -> None:
            raise RuntimeError("observer failure")

        store = MemoryStore(max_size=1, cleanup_interval=0, on_evict=explode, clock=clock)

        await store.increment("a", ttl=1_000)
        assert await store.increment("b", ttl=1_000) == 1
        assert store.has("b")


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_increments_have_no_gaps_or_duplicates(self, store: MemoryStore) -> None:
        values = await asyncio.gather(*(store.increment("hot", ttl=3_600_000) for _ in range(10)))

        assert sorted(values) == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_increments_from_threads_are_not_lost(self) -> None:
        store = MemoryStore(max_size=10, cleanup_interval=0)

        def worker() -> list[int]:
            return [asyncio.run(store.increment("hot", ttl=3_600_000)) for _ in range(50)]

        results = await asyncio.gather(*(asyncio.to_thread(worker) for _ in range(4)))
        values = [value for chunk in results for value in chunk]

        assert sorted(values) == list(range(1, 201))


# =============================================================================
# Utility methods
# =============================================================================


class TestUtilities:
    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store: MemoryStore) -> None:
        await store.increment("a", ttl=60_000)
        await store.increment("b", ttl=60_000)

        assert store.delete("a") is True
        assert store.delete("a") is False

        store.clear()
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_stats(self, store: MemoryStore) -> None:
        await store.increment("a", ttl=60_000)

        stats = store.get_stats()

        assert stats["size"] == 1
        assert stats["max_size"] == 100

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self, clock) -> None:
        async with MemoryStore(cleanup_interval=0, clock=clock) as store:
            await store.increment("a", ttl=60_000)

        assert store.size == 0
