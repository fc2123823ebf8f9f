"""
Bounded Work Queue

Runs an async callback over pushed items with at most N callbacks in
flight. Each completion immediately starts the next queued item, and a
failing item never stops the rest of the queue.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Iterable, List, Optional, Set, Tuple

from mediascan.core.logging import get_logger

DEFAULT_MAX_CONCURRENT = 20


class BoundedWorkQueue:
    """
    FIFO work queue with a concurrency ceiling.

    Args:
        callback: Coroutine function invoked once per item
        max_concurrent: Maximum number of callbacks running at once
        on_error: Optional handler called with (item, exception) when a
            callback fails. Without it the exception is delivered to the
            future returned by push().
    """

    def __init__(self, callback: Callable[[Any], Awaitable[Any]],
                 max_concurrent: int = DEFAULT_MAX_CONCURRENT,
                 on_error: Optional[Callable[[Any, BaseException], None]] = None):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")

        self.logger = get_logger()
        self.callback = callback
        self.max_concurrent = max_concurrent
        self.on_error = on_error
        self._pending: Deque[Tuple[Any, asyncio.Future]] = deque()
        self._active = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def push(self, item: Any) -> asyncio.Future:
        """
        Enqueue an item and start work if a slot is free.

        Returns:
            Future resolving to the callback result (None when a failure
            was routed to on_error)
        """
        future = asyncio.get_running_loop().create_future()
        self._pending.append((item, future))
        self._pump()
        return future

    async def run(self, items: Iterable[Any]) -> List[Any]:
        """
        Push every item and wait until all of them settle.

        Returns:
            Results in push order; failures without an on_error handler
            appear as exception instances
        """
        futures = [self.push(item) for item in items]
        if not futures:
            return []
        return await asyncio.gather(*futures, return_exceptions=True)

    def _pump(self) -> None:
        while self._active < self.max_concurrent and self._pending:
            item, future = self._pending.popleft()
            self._active += 1
            task = asyncio.ensure_future(self._process(item, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _process(self, item: Any, future: asyncio.Future) -> None:
        try:
            result = await self.callback(item)
        except Exception as e:
            if self.on_error is not None:
                try:
                    self.on_error(item, e)
                except Exception as handler_error:
                    self.logger.error(f"Error handler failed for {item!r}: {handler_error}")
                if not future.done():
                    future.set_result(None)
            elif not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._pump()
