"""
Change coalescing: collapse bursts of change signals into one sync cycle.

A single bookmark edit, such as reordering a folder, fans out into many
raw events. The coalescer keeps at most one pending deadline; each new
signal pushes it to ``window`` seconds after the latest signal, and the
cycle fires once that deadline passes with no further signal.

State machine::

    IDLE --signal--> PENDING --signal--> PENDING (deadline reset)
    PENDING --deadline--> FIRING --cycle done--> IDLE
    FIRING --signal--> PENDING (the in-flight cycle keeps running)

The clock is injected so the schedule can be driven without real delays.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 30.0


class CoalescerState(Enum):
    """Observable coalescer state."""
    IDLE = "idle"
    PENDING = "pending"
    FIRING = "firing"


class ChangeCoalescer:
    """
    Debounces change signals into sync cycles.

    Args:
        cycle: Coroutine function run once per quiescence window
        window: Seconds of quiet required after the last signal
        clock: Monotonic time source in seconds
    """

    def __init__(self, cycle: Callable[[], Awaitable[Any]],
                 window: float = DEFAULT_WINDOW_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.cycle = cycle
        self.window = window
        self.clock = clock
        self.cycles_fired = 0
        self._deadline: Optional[float] = None
        self._in_flight = 0
        self._tasks: Set[asyncio.Future] = set()
        self._wakeup: Optional[asyncio.Event] = None
        self._stopping = False

    @property
    def state(self) -> CoalescerState:
        if self._deadline is not None:
            return CoalescerState.PENDING
        if self._in_flight:
            return CoalescerState.FIRING
        return CoalescerState.IDLE

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def signal(self):
        """Record a change; replaces any outstanding deadline."""
        self._deadline = self.clock() + self.window
        logger.debug(f"Change detected, sync scheduled in {self.window:g}s")
        if self._wakeup is not None:
            self._wakeup.set()

    def cancel(self):
        """Drop the pending deadline, if any. In-flight cycles keep running."""
        self._deadline = None
        if self._wakeup is not None:
            self._wakeup.set()

    def time_remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self.clock())

    def due(self) -> bool:
        return self._deadline is not None and self.clock() >= self._deadline

    async def fire_if_due(self) -> bool:
        """
        Run the cycle if the deadline has passed.

        The cycle is awaited to completion. Signals arriving meanwhile open
        a new pending window rather than being dropped.

        Returns:
            Whether a cycle ran
        """
        if not self.due():
            return False
        self._deadline = None
        await self._fire()
        return True

    async def _fire(self):
        self._in_flight += 1
        try:
            await self.cycle()
        except Exception as e:
            logger.error(f"Sync cycle failed: {e}")
        finally:
            self._in_flight -= 1
            self.cycles_fired += 1

    def _start_cycle(self):
        self._deadline = None
        task = asyncio.ensure_future(self._fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self):
        """
        Drive the schedule on the running event loop until ``stop()``.

        Each cycle runs as its own task so a new window can open while a
        transmission is still in flight. In-flight cycles are awaited before
        returning.
        """
        self._wakeup = asyncio.Event()
        self._stopping = False
        logger.debug(f"Coalescer running (window {self.window:g}s)")
        try:
            while not self._stopping:
                self._wakeup.clear()
                if self.due():
                    self._start_cycle()
                    continue
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=self.time_remaining())
                except asyncio.TimeoutError:
                    pass
        finally:
            self._wakeup = None
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)

    def stop(self):
        self._stopping = True
        if self._wakeup is not None:
            self._wakeup.set()
