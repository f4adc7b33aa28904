"""Tests for marksync/coalescer.py change coalescing."""
import asyncio

import pytest
from unittest.mock import AsyncMock

from marksync.coalescer import ChangeCoalescer, CoalescerState

WINDOW = 30.0


@pytest.fixture
def cycle():
    return AsyncMock()


@pytest.fixture
def coalescer(cycle, clock):
    return ChangeCoalescer(cycle, window=WINDOW, clock=clock)


class TestSchedule:
    """Test deadline handling with a manual clock."""

    def test_starts_idle(self, coalescer):
        assert coalescer.state == CoalescerState.IDLE
        assert coalescer.time_remaining() is None
        assert coalescer.due() is False

    def test_signal_sets_deadline(self, coalescer, clock):
        coalescer.signal()
        assert coalescer.state == CoalescerState.PENDING
        assert coalescer.deadline == clock() + WINDOW

    @pytest.mark.asyncio
    async def test_burst_fires_once_after_last_signal(self, coalescer, cycle, clock):
        """N signals in a burst produce one cycle, a window after the last."""
        for _ in range(5):
            coalescer.signal()
            clock.advance(1)

        clock.advance(WINDOW - 1 - 0.5)
        assert await coalescer.fire_if_due() is False

        clock.advance(0.5)
        assert await coalescer.fire_if_due() is True
        assert cycle.await_count == 1
        assert coalescer.state == CoalescerState.IDLE

    @pytest.mark.asyncio
    async def test_signal_just_before_deadline_resets(self, coalescer, cycle, clock):
        coalescer.signal()
        clock.advance(WINDOW - 0.5)
        coalescer.signal()

        clock.advance(1)
        assert await coalescer.fire_if_due() is False

        clock.advance(WINDOW)
        assert await coalescer.fire_if_due() is True
        assert cycle.await_count == 1

    @pytest.mark.asyncio
    async def test_no_signal_never_fires(self, coalescer, cycle, clock):
        clock.advance(WINDOW * 10)
        assert await coalescer.fire_if_due() is False
        cycle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_drops_deadline(self, coalescer, cycle, clock):
        coalescer.signal()
        coalescer.cancel()
        clock.advance(WINDOW)
        assert await coalescer.fire_if_due() is False
        assert coalescer.state == CoalescerState.IDLE

    @pytest.mark.asyncio
    async def test_signal_during_cycle_opens_new_window(self, clock):
        """A change while a cycle is in flight schedules another cycle."""
        states = []

        async def cycle():
            states.append(coalescer.state)
            coalescer.signal()

        coalescer = ChangeCoalescer(cycle, window=WINDOW, clock=clock)
        coalescer.signal()
        clock.advance(WINDOW)
        await coalescer.fire_if_due()

        assert states == [CoalescerState.FIRING]
        assert coalescer.state == CoalescerState.PENDING
        assert coalescer.deadline == clock() + WINDOW

    @pytest.mark.asyncio
    async def test_cycle_exception_contained(self, clock, caplog):
        cycle = AsyncMock(side_effect=RuntimeError("kaboom"))
        coalescer = ChangeCoalescer(cycle, window=WINDOW, clock=clock)
        coalescer.signal()
        clock.advance(WINDOW)

        assert await coalescer.fire_if_due() is True
        assert coalescer.cycles_fired == 1
        assert coalescer.state == CoalescerState.IDLE
        assert "kaboom" in caplog.text


class TestRunLoop:
    """Test the event-loop driven schedule with real time."""

    @pytest.mark.asyncio
    async def test_run_fires_after_window(self):
        cycle = AsyncMock()
        coalescer = ChangeCoalescer(cycle, window=0.05)
        runner = asyncio.ensure_future(coalescer.run())

        for _ in range(3):
            coalescer.signal()
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.2)

        coalescer.stop()
        await runner
        assert cycle.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_cycle(self):
        finished = []

        async def slow_cycle():
            await asyncio.sleep(0.05)
            finished.append(True)

        coalescer = ChangeCoalescer(slow_cycle, window=0.01)
        runner = asyncio.ensure_future(coalescer.run())
        coalescer.signal()
        await asyncio.sleep(0.03)

        coalescer.stop()
        await runner
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_idle_run_stops_cleanly(self):
        cycle = AsyncMock()
        coalescer = ChangeCoalescer(cycle, window=0.01)
        runner = asyncio.ensure_future(coalescer.run())
        await asyncio.sleep(0.02)
        coalescer.stop()
        await asyncio.wait_for(runner, timeout=1)
        cycle.assert_not_awaited()
