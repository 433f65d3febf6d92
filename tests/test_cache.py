"""Tests for the narrative response cache."""

import asyncio

import pytest

from scenario_intel.data.cache import NarrativeCache


@pytest.fixture
def cache(tmp_path) -> NarrativeCache:
    """Fresh on-disk cache per test."""
    return NarrativeCache(cache_dir=str(tmp_path / "narrative"), ttl=60)


class TestStore:
    """Tests for store/get/has/clear."""

    def test_round_trip(self, cache: NarrativeCache) -> None:
        cache.store("narrative:abc", [{"id": "survival"}])
        assert cache.has("narrative:abc")
        assert cache.get("narrative:abc") == [{"id": "survival"}]

    def test_missing_key(self, cache: NarrativeCache) -> None:
        assert cache.get("nope") is None
        assert not cache.has("nope")

    def test_clear(self, cache: NarrativeCache) -> None:
        cache.store("k", {"v": 1})
        cache.clear()
        assert cache.get("k") is None


class TestGetOrFetch:
    """Tests for get_or_fetch singleflight behavior."""

    def test_dedupes_in_flight_fetches(self, cache: NarrativeCache) -> None:
        calls = 0

        async def fetcher() -> dict:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.02)
            return {"answer": "shared"}

        async def run() -> list:
            return await asyncio.gather(*(cache.get_or_fetch("k", fetcher) for _ in range(5)))

        results = asyncio.run(run())
        assert calls == 1
        assert results == [{"answer": "shared"}] * 5
        assert cache.get("k") == {"answer": "shared"}

    def test_cache_hit_skips_fetcher(self, cache: NarrativeCache) -> None:
        cache.store("k", {"answer": "cached"})

        async def fetcher() -> dict:
            raise AssertionError("fetcher should not run on a cache hit")

        assert asyncio.run(cache.get_or_fetch("k", fetcher)) == {"answer": "cached"}

    def test_failures_are_not_cached(self, cache: NarrativeCache) -> None:
        calls = 0

        async def failing() -> dict:
            nonlocal calls
            calls += 1
            raise RuntimeError("service down")

        async def succeeding() -> dict:
            nonlocal calls
            calls += 1
            return {"answer": "recovered"}

        with pytest.raises(RuntimeError, match="service down"):
            asyncio.run(cache.get_or_fetch("k", failing))
        assert not cache.has("k")

        assert asyncio.run(cache.get_or_fetch("k", succeeding)) == {"answer": "recovered"}
        assert calls == 2

    def test_failure_reaches_every_joiner(self, cache: NarrativeCache) -> None:
        async def failing() -> dict:
            await asyncio.sleep(0.02)
            raise RuntimeError("boom")

        async def run() -> list:
            return await asyncio.gather(
                *(cache.get_or_fetch("k", failing) for _ in range(3)),
                return_exceptions=True,
            )

        results = asyncio.run(run())
        assert all(isinstance(r, RuntimeError) for r in results)
        assert not cache.has("k")

    def test_inflight_cleared_after_fetch(self, cache: NarrativeCache) -> None:
        async def fetcher() -> dict:
            return {"answer": "done"}

        asyncio.run(cache.get_or_fetch("k", fetcher))
        assert cache._inflight == {}

    def test_starting_caller_cancel_does_not_cancel_joiners(self, cache: NarrativeCache) -> None:
        async def fetcher() -> dict:
            await asyncio.sleep(0.1)
            return {"answer": "shared"}

        async def run() -> tuple:
            first = asyncio.create_task(cache.get_or_fetch("k", fetcher))
            await asyncio.sleep(0)
            second = asyncio.create_task(cache.get_or_fetch("k", fetcher))
            await asyncio.sleep(0.01)
            first.cancel()
            return await asyncio.gather(first, second, return_exceptions=True)

        first, second = asyncio.run(run())
        assert isinstance(first, asyncio.CancelledError)
        assert second == {"answer": "shared"}
        assert cache.get("k") == {"answer": "shared"}
