"""Cooperative concurrency limiting for upstream search calls."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from ..config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestCounter:
    """Counts requests by kind within one run."""

    def __init__(self):
        self.counts: Dict[str, int] = {}

    def increment(self, kind: str = "search"):
        self.counts[kind] = self.counts.get(kind, 0) + 1

    def get(self, kind: str = "search") -> int:
        return self.counts.get(kind, 0)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def reset(self):
        self.counts.clear()


class ConcurrencyLimiter:
    """
    Bounds the number of in-flight upstream calls with an asyncio semaphore.

    Blocking callables are run in the default executor so the event loop
    stays free while they wait on the network.
    """

    def __init__(self, max_concurrent: Optional[int] = None, counter: Optional[RequestCounter] = None):
        """
        Initialize concurrency limiter.

        Args:
            max_concurrent: Max simultaneous calls (uses settings if not provided)
            counter: Request counter shared with the caller
        """
        self.max_concurrent = max_concurrent or settings.max_concurrent_searches
        self.counter = counter or RequestCounter()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def semaphore(self) -> asyncio.Semaphore:
        # A semaphore belongs to one event loop; each asyncio.run gets a fresh one
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._loop = loop
        return self._semaphore

    async def run(self, func: Callable[..., T], *args: Any, kind: str = "search", **kwargs: Any) -> T:
        """
        Run a blocking callable once a slot is free.

        Args:
            func: Callable to run
            kind: Request kind recorded in the counter

        Returns:
            The callable's return value
        """
        async with self.semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            self.counter.increment(kind)
            try:
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(None, lambda: func(*args, **kwargs))
            finally:
                self.in_flight -= 1

    async def run_async(self, make_coro: Callable[[], Awaitable[T]], kind: str = "search") -> T:
        """Await a coroutine factory once a slot is free."""
        async with self.semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            self.counter.increment(kind)
            try:
                return await make_coro()
            finally:
                self.in_flight -= 1

    async def run_batch(
        self,
        func: Callable[[Any], T],
        items: Iterable[Any],
        kind: str = "search",
        return_exceptions: bool = False
    ) -> List[Any]:
        """
        Apply func to every item with bounded concurrency.

        Args:
            func: Blocking callable taking one item
            items: Items to process
            kind: Request kind recorded in the counter
            return_exceptions: Return exceptions in place of results instead of raising

        Returns:
            Results in item order
        """
        tasks = [self.run(func, item, kind=kind) for item in items]
        results = await asyncio.gather(*tasks, return_exceptions=return_exceptions)
        logger.debug(f"Completed {len(results)} {kind} calls (peak concurrency {self.peak_in_flight})")
        return list(results)
