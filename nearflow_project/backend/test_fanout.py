"""
Tests for the bounded fan-out runner and keyed cache
"""
import asyncio

import pytest

from intent_workflow.fanout import KeyedCache, run_bounded


def test_results_stay_index_aligned():
    async def mapper(item, index):
        # later items finish first
        await asyncio.sleep(0.001 * (10 - item))
        return item * 10

    result = asyncio.run(run_bounded(list(range(10)), mapper, workers=3))

    assert result.ok
    assert result.results == [item * 10 for item in range(10)]


def test_each_item_processed_once_and_bounded():
    seen = []
    in_flight = 0
    peak = 0

    async def mapper(item, index):
        nonlocal in_flight, peak
        seen.append(index)
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        return item

    result = asyncio.run(run_bounded("abcdefg", mapper, workers=2))

    assert sorted(seen) == list(range(7))
    assert peak <= 2
    assert result.results == list("abcdefg")


def test_more_workers_than_items_and_empty_input():
    async def mapper(item, index):
        return index

    assert asyncio.run(run_bounded([5, 6], mapper, workers=16)).results == [0, 1]
    empty = asyncio.run(run_bounded([], mapper, workers=4))
    assert empty.results == []
    assert empty.ok


def test_failures_are_collected_not_raised():
    async def mapper(item, index):
        if item % 3 == 0:
            raise RuntimeError(f"bad item {item}")
        return item

    result = asyncio.run(run_bounded([1, 3, 4, 6], mapper, workers=2))

    assert not result.ok
    assert [failure.index for failure in result.failures] == [1, 3]
    assert result.results == [1, None, 4, None]
    assert result.succeeded() == [1, 4]
    assert "bad item 3" in str(result.failures[0].error)


def test_invalid_worker_budget():
    async def mapper(item, index):
        return item

    with pytest.raises(ValueError, match="workers must be >= 1"):
        asyncio.run(run_bounded([1], mapper, workers=0))


def test_keyed_cache_shares_in_flight_load():
    cache = KeyedCache(normalize_key=str.lower)
    calls = []

    async def loader(key):
        calls.append(key)
        await asyncio.sleep(0.001)
        return 6

    async def scenario():
        shared = await asyncio.gather(*(cache.get(key, loader) for key in ("USDC", "usdc", "Usdc")))
        return shared, await cache.get("usdc", loader)

    assert asyncio.run(scenario()) == ([6, 6, 6], 6)
    assert calls == ["USDC"]
    assert cache.loads == 1


def test_keyed_cache_evicts_failed_load():
    cache = KeyedCache()
    attempts = []

    async def loader(key):
        attempts.append(key)
        if len(attempts) == 1:
            raise RuntimeError("rpc unavailable")
        return 18

    async def scenario():
        with pytest.raises(RuntimeError):
            await cache.get("eth", loader)
        return await cache.get("eth", loader)

    assert asyncio.run(scenario()) == 18
    assert len(attempts) == 2
