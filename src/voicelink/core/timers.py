"""
Cancellable timers for the session subsystem

All delayed work (session timeout, auto-start settle, restart gap) goes
through a Scheduler so tests can drive virtual time.

Callbacks may be plain functions or return an awaitable; awaitables are
run as tasks on the event loop.
"""

import asyncio
import heapq
import inspect
import itertools
import time
from typing import Any, Callable, Optional, Protocol, Set

import structlog

logger = structlog.get_logger()


TimerCallback = Callable[[], Any]


class TimerHandle(Protocol):
    """Handle to a pending timer"""

    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    """Source of time and delayed callbacks"""

    def now(self) -> float:
        """Current time in seconds"""
        ...

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run callback after delay seconds unless cancelled first"""
        ...

    async def drain(self) -> None:
        """Wait for callbacks that have already fired to finish"""
        ...


class _AsyncioTimer:
    """TimerHandle backed by loop.call_later"""

    def __init__(self):
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Production scheduler on the running asyncio loop"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        timer = _AsyncioTimer()

        def fire():
            if timer.cancelled:
                return
            result = callback()
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

        timer._handle = loop.call_later(max(delay, 0.0), fire)
        return timer

    async def drain(self) -> None:
        """
        Wait for in-flight callback tasks, including any they spawn

        Failures were already logged by the done callback. The calling task
        is skipped so a callback may drain without waiting on itself.
        """
        current = asyncio.current_task()
        while True:
            tasks = [task for task in self._tasks if task is not current and not task.done()]
            if not tasks:
                return
            logger.debug("timers.drain", tasks=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("timers.callback.failed",
                         error=str(task.exception()),
                         error_type=type(task.exception()).__name__)


class _ManualTimer:
    """TimerHandle for ManualScheduler"""

    def __init__(self, deadline: float, callback: TimerCallback):
        self.deadline = deadline
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """
    Virtual-time scheduler for deterministic tests

    Time only moves when advance() is awaited; due timers fire in deadline
    order and awaitable results are awaited before the next timer fires.

    Example:
        scheduler = ManualScheduler()
        scheduler.call_later(1.5, check)
        await scheduler.advance(1.5)  # check() has run
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._counter = itertools.count()
        self._heap: list[tuple[float, int, _ManualTimer]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        timer = _ManualTimer(self._now + max(delay, 0.0), callback)
        heapq.heappush(self._heap, (timer.deadline, next(self._counter), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of timers that have not fired or been cancelled"""
        return sum(1 for _, _, timer in self._heap if not timer.cancelled)

    async def advance(self, seconds: float) -> None:
        """Move virtual time forward, firing every timer that comes due"""
        target = self._now + seconds

        while self._heap and self._heap[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._heap)
            self._now = deadline
            if timer.cancelled:
                continue
            result = timer.callback()
            if inspect.isawaitable(result):
                await result
            # Let fire-and-forget tasks spawned by the callback run
            await asyncio.sleep(0)

        self._now = target

    async def drain(self) -> None:
        # Callbacks are awaited inside advance(); nothing is ever in flight
        return None
