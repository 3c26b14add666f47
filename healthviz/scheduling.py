"""Deferral policies for publishing updates to rendering consumers.

Both policies coalesce bursts: scheduling again before the pending call fires
only replaces the callback, so the last write wins and there is never more
than one outstanding call per policy. They run on anything that offers
``call_soon(cb)`` and ``call_later(delay, cb)``; an :mod:`asyncio` loop works
as is, and :class:`ManualScheduler` drives them deterministically.
"""

from __future__ import annotations

import heapq
import itertools
from typing import Any, Callable, List, Optional, Protocol, Tuple

SECONDARY_DELAY = 0.1

Callback = Callable[[], Any]


class Scheduler(Protocol):
    def call_soon(self, callback: Callback) -> Any: ...

    def call_later(self, delay: float, callback: Callback) -> Any: ...


class ManualScheduler:
    """A virtual clock; nothing runs until ``run_ready`` or ``advance``."""

    def __init__(self):
        self.now = 0.0
        self._queue: List[Tuple[float, int, Callback]] = []
        self._seq = itertools.count()

    def call_soon(self, callback: Callback) -> None:
        self.call_later(0.0, callback)

    def call_later(self, delay: float, callback: Callback) -> None:
        heapq.heappush(self._queue, (self.now + max(0.0, delay), next(self._seq), callback))

    def run_ready(self) -> int:
        ran = 0
        while self._queue and self._queue[0][0] <= self.now:
            _, _, callback = heapq.heappop(self._queue)
            callback()
            ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        self.now += seconds
        return self.run_ready()

    def __len__(self) -> int:
        return len(self._queue)


class _CoalescingPolicy:
    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._pending: Optional[Callback] = None
        self._armed = False

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, callback: Callback) -> None:
        self._pending = callback
        if not self._armed:
            self._armed = True
            self._arm()

    def _arm(self) -> None:
        raise NotImplementedError

    def _fire(self) -> None:
        self._armed = False
        self.flush()

    def flush(self) -> None:
        callback, self._pending = self._pending, None
        if callback is not None:
            callback()


class CoalesceUntilNextTick(_CoalescingPolicy):
    def _arm(self) -> None:
        self.scheduler.call_soon(self._fire)


class CoalesceWithTrailingDelay(_CoalescingPolicy):
    def __init__(self, scheduler: Scheduler, delay: float = SECONDARY_DELAY):
        super().__init__(scheduler)
        self.delay = delay

    def _arm(self) -> None:
        self.scheduler.call_later(self.delay, self._fire)
