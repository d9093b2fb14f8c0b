"""Rate-limited task scheduler for outbound calls.

One :class:`RateLimitedScheduler` is shared by everything that talks to the
remote catalog during a sync run.  It caps the number of tasks in flight and
spaces out task *starts* so the remote side sees a steady request rate.

Usage::

    with RateLimitedScheduler(max_concurrent=30, min_interval=0.05) as scheduler:
        futures = [scheduler.schedule(client.fetch_item, item_id) for item_id in ids]
        results = [f.result() for f in futures]
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitedScheduler:
    """Bounded-concurrency executor with a minimum spacing between task starts.

    Parameters
    ----------
    max_concurrent:
        Maximum number of tasks executing at the same time.
    min_interval:
        Minimum number of seconds between the start of two consecutive tasks.

    Tasks wait in FIFO submission order when either limit is saturated.  A
    task that raises does not disturb the others; the exception is delivered
    through the returned :class:`~concurrent.futures.Future`.  There is no
    retry here; retry policy belongs to the caller.
    """

    def __init__(self, max_concurrent: int = 30, min_interval: float = 0.05) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent,
            thread_name_prefix="scheduler",
        )
        self._gate = threading.Lock()
        self._next_start = 0.0

    @classmethod
    def unlimited(cls, max_concurrent: int = 30) -> RateLimitedScheduler:
        """Return a scheduler without start spacing (handy in tests)."""
        return cls(max_concurrent=max_concurrent, min_interval=0.0)

    @classmethod
    def from_settings(cls, settings: Any) -> RateLimitedScheduler:
        return cls(
            max_concurrent=settings.scheduler_max_concurrent,
            min_interval=settings.scheduler_min_interval_ms / 1000.0,
        )

    # -- public API -----------------------------------------------------------

    def schedule(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Queue *fn* for execution and return a future for its result."""
        return self._executor.submit(self._run, fn, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> RateLimitedScheduler:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown(wait=True)

    # -- internals ------------------------------------------------------------

    def _reserve_start(self) -> float:
        """Claim the next start slot and return how long to wait for it."""
        with self._gate:
            now = time.monotonic()
            start_at = max(now, self._next_start)
            self._next_start = start_at + self.min_interval
        return start_at - now

    def _run(self, fn: Callable[..., T], args: tuple[Any, ...], kwargs: dict[str, Any]) -> T:
        delay = self._reserve_start()
        if delay > 0:
            time.sleep(delay)
        return fn(*args, **kwargs)
