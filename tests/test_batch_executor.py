"""
Unit tests for bounded-concurrency batch execution.
"""

import asyncio

import pytest

from app.core.batch_executor import run_bounded


class TestRunBounded:

    async def test_never_exceeds_limit(self):
        in_flight = 0
        peak = 0

        async def operation(item, index):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return item * 2

        results = await run_bounded(list(range(10)), operation, limit=3)

        assert peak <= 3
        assert results == [i * 2 for i in range(10)]

    async def test_failures_do_not_stop_the_batch(self):
        attempted = []

        async def operation(item, index):
            attempted.append(index)
            if index == 4:
                raise RuntimeError("boom")
            return index

        results = await run_bounded(list(range(10)), operation, limit=3)

        assert sorted(attempted) == list(range(10))
        assert results[4] is None
        assert [r for i, r in enumerate(results) if i != 4] == [i for i in range(10) if i != 4]

    async def test_empty_input(self):
        async def operation(item, index):
            return item

        assert await run_bounded([], operation, limit=3) == []

    async def test_fewer_items_than_limit(self):
        async def operation(item, index):
            return item

        assert await run_bounded(["a"], operation, limit=5) == ["a"]

    async def test_invalid_limit(self):
        async def operation(item, index):
            return item

        with pytest.raises(ValueError):
            await run_bounded([1], operation, limit=0)
