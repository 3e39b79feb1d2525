"""Tests for the scheduler abstraction."""
import asyncio

import pytest

from src.scheduler import LoopScheduler, ManualScheduler


class TestManualScheduler:
    def test_call_later_fires_when_due(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(10, lambda: fired.append(scheduler.now()))

        scheduler.advance(9)
        assert fired == []
        scheduler.advance(1)
        assert fired == [10]

    def test_cancelled_timer_never_fires(self):
        scheduler = ManualScheduler()
        fired = []
        handle = scheduler.call_later(5, lambda: fired.append(True))
        handle.cancel()
        handle.cancel()

        scheduler.advance(100)
        assert fired == []
        assert handle.cancelled
        assert scheduler.pending == 0

    def test_fires_in_due_order(self):
        scheduler = ManualScheduler()
        order = []
        scheduler.call_later(30, lambda: order.append("c"))
        scheduler.call_later(10, lambda: order.append("a"))
        scheduler.call_later(20, lambda: order.append("b"))
        scheduler.call_later(20, lambda: order.append("b2"))

        scheduler.advance(30)
        assert order == ["a", "b", "b2", "c"]

    def test_call_every_repeats_until_cancelled(self):
        scheduler = ManualScheduler()
        ticks = []
        handle = scheduler.call_every(60, lambda: ticks.append(scheduler.now()))

        scheduler.advance(185)
        assert ticks == [60, 120, 180]

        handle.cancel()
        scheduler.advance(600)
        assert ticks == [60, 120, 180]

    def test_callback_can_schedule_more_work(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(5, lambda: scheduler.call_later(5, lambda: fired.append(scheduler.now())))

        scheduler.advance(10)
        assert fired == [10]

    def test_advance_to(self):
        scheduler = ManualScheduler(start=100)
        scheduler.advance_to(150)
        assert scheduler.now() == 150


class TestLoopScheduler:
    @pytest.mark.asyncio
    async def test_call_later_runs_on_loop(self):
        scheduler = LoopScheduler()
        done = asyncio.Event()
        scheduler.call_later(0.01, done.set)
        await asyncio.wait_for(done.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self):
        scheduler = LoopScheduler()
        fired = []
        handle = scheduler.call_later(0.01, lambda: fired.append(True))
        handle.cancel()
        await asyncio.sleep(0.05)
        assert fired == []

    @pytest.mark.asyncio
    async def test_call_every_and_cancel(self):
        scheduler = LoopScheduler()
        ticks = []
        handle = scheduler.call_every(0.01, lambda: ticks.append(True))
        await asyncio.sleep(0.06)
        handle.cancel()
        count = len(ticks)
        assert count >= 2
        await asyncio.sleep(0.05)
        assert len(ticks) == count
