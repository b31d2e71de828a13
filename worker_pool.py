"""Bounded worker pool and request pacing for concurrent Clay API calls."""

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from typing import Any, Callable, Deque, Iterable, Iterator, Optional

from models import TaskResult

logger = logging.getLogger('claycli.worker_pool')

DEFAULT_CONCURRENCY = 10
CONCURRENCY_TIME = 0.1  # seconds


class RateLimiter:
    """Allow at most ``limit`` calls per sliding window of ``period`` seconds."""

    def __init__(self, limit: int = DEFAULT_CONCURRENCY, period: float = CONCURRENCY_TIME):
        if limit < 1:
            raise ValueError("Rate limit must be a positive integer")
        self.limit = limit
        self.period = period
        self._calls: Deque[float] = deque()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until another call fits in the current window."""
        while True:
            with self._lock:
                now = time.monotonic()
                while self._calls and now - self._calls[0] >= self.period:
                    self._calls.popleft()

                if len(self._calls) < self.limit:
                    self._calls.append(now)
                    return

                wait_time = self.period - (now - self._calls[0])

            logger.debug(f"Rate limiting: sleeping {wait_time:.3f}s")
            time.sleep(wait_time)


class WorkerPool:
    """
    Run a function over a stream of items with bounded concurrency.

    At most ``max_workers`` items are in flight at any time and new items are
    only pulled from the input as earlier ones complete, so a consumer that
    stops iterating stops new work from being scheduled. Work that already
    started runs to completion.

    Every item produces a ``TaskResult``: the return value on success, or the
    raised exception. Results come back in input order.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_CONCURRENCY,
        rate_limiter: Optional[RateLimiter] = None,
        name: str = "claycli"
    ):
        """
        Initialize worker pool.

        Args:
            max_workers: Maximum number of concurrent tasks
            rate_limiter: Optional pacing applied before each task starts
            name: Thread name prefix, shows up in debug logs
        """
        if max_workers < 1:
            raise ValueError("max_workers must be a positive integer")
        self.max_workers = max_workers
        self.rate_limiter = rate_limiter
        self.name = name

    def _run(self, fn: Callable[[Any], Any], item: Any) -> TaskResult:
        if self.rate_limiter:
            self.rate_limiter.acquire()
        try:
            return TaskResult(item=item, value=fn(item))
        except Exception as e:
            logger.debug(f"Task failed for {item!r}: {e}")
            return TaskResult(item=item, error=e)

    def map(self, fn: Callable[[Any], Any], items: Iterable[Any]) -> Iterator[TaskResult]:
        """
        Apply ``fn`` to every item.

        Args:
            fn: Callable taking one item
            items: Any iterable, consumed lazily

        Yields:
            TaskResult per item, in input order
        """
        source = iter(items)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=self.name) as executor:
            pending = deque(
                executor.submit(self._run, fn, item)
                for item in islice(source, self.max_workers)
            )

            while pending:
                result = pending.popleft().result()

                for item in islice(source, 1):
                    pending.append(executor.submit(self._run, fn, item))

                yield result


__all__ = ['WorkerPool', 'RateLimiter', 'DEFAULT_CONCURRENCY', 'CONCURRENCY_TIME']
