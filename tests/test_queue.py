"""
Tests for the Bounded Work Queue

Tests the concurrency ceiling, FIFO start order and failure isolation.
"""

import asyncio

import pytest

from mediascan.core.queue import BoundedWorkQueue


class TestBoundedWorkQueue:
    """Test cases for BoundedWorkQueue"""

    def test_rejects_non_positive_limit(self):
        """A queue needs at least one slot"""
        async def callback(item):
            return item

        with pytest.raises(ValueError):
            BoundedWorkQueue(callback, max_concurrent=0)

    @pytest.mark.asyncio
    async def test_never_exceeds_max_concurrent(self):
        """No more than max_concurrent callbacks are in flight"""
        active = 0
        peak = 0

        async def callback(item):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return item * 2

        queue = BoundedWorkQueue(callback, max_concurrent=3)
        results = await queue.run(range(10))

        assert peak == 3
        assert results == [i * 2 for i in range(10)]
        assert queue.active_count == 0
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_items_start_in_push_order(self):
        """With a single slot items are processed strictly FIFO"""
        started = []

        async def callback(item):
            started.append(item)
            await asyncio.sleep(0)

        queue = BoundedWorkQueue(callback, max_concurrent=1)
        await queue.run(['a', 'b', 'c', 'd'])

        assert started == ['a', 'b', 'c', 'd']

    @pytest.mark.asyncio
    async def test_failure_routed_to_error_handler(self):
        """A failing item reaches on_error and does not stop the others"""
        errors = []

        async def callback(item):
            if item == 2:
                raise RuntimeError("broken page")
            return item

        queue = BoundedWorkQueue(callback, max_concurrent=2,
                                 on_error=lambda item, error: errors.append((item, str(error))))
        results = await queue.run([1, 2, 3])

        assert results == [1, None, 3]
        assert errors == [(2, "broken page")]

    @pytest.mark.asyncio
    async def test_failure_without_handler_surfaces_in_results(self):
        """Without on_error the exception is delivered to the item's future"""
        async def callback(item):
            if item == 'bad':
                raise ValueError("bad item")
            return item

        queue = BoundedWorkQueue(callback, max_concurrent=2)
        results = await queue.run(['good', 'bad', 'fine'])

        assert results[0] == 'good'
        assert isinstance(results[1], ValueError)
        assert results[2] == 'fine'

    @pytest.mark.asyncio
    async def test_failing_error_handler_does_not_block_queue(self):
        """An exception inside on_error is logged, the queue keeps draining"""
        async def callback(item):
            raise RuntimeError("always fails")

        def on_error(item, error):
            raise KeyError("handler broke")

        queue = BoundedWorkQueue(callback, max_concurrent=1, on_error=on_error)
        results = await queue.run([1, 2, 3])

        assert results == [None, None, None]
        assert queue.active_count == 0

    @pytest.mark.asyncio
    async def test_push_returns_future(self):
        """push() starts work right away when a slot is free"""
        async def callback(item):
            return item.upper()

        queue = BoundedWorkQueue(callback, max_concurrent=1)
        future = queue.push('page')

        assert await future == 'PAGE'

    @pytest.mark.asyncio
    async def test_run_with_no_items(self):
        async def callback(item):
            return item

        queue = BoundedWorkQueue(callback)
        assert await queue.run([]) == []
