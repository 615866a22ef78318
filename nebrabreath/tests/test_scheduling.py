"""Tests for the scheduler implementations (manual, asyncio, Qt)."""

import asyncio

import pytest

from nebrabreath.engine.scheduling import (
    AsyncioFrameScheduler,
    AsyncioIntervalTimer,
    ManualClock,
)


class TestManualClock:
    def test_frames_delivered_at_frame_boundaries(self):
        clock = ManualClock(frame_interval_ms=16)
        frames = clock.frame_scheduler()
        seen = []

        def on_frame(ts):
            seen.append(ts)
            if len(seen) < 4:
                frames.schedule(on_frame)

        frames.schedule(on_frame)
        clock.advance(100)
        # First frame is flushed at the current instant, then one per boundary
        assert seen == [0.0, 16.0, 32.0, 48.0]

    def test_cancelled_frame_never_fires(self):
        clock = ManualClock()
        seen = []
        handle = clock.frame_scheduler().schedule(seen.append)
        handle.cancel()
        handle.cancel()  # idempotent
        clock.advance(50)
        assert seen == []
        assert handle.cancelled

    def test_irregular_cadence_cycles(self):
        clock = ManualClock()
        frames = clock.frame_scheduler()
        seen = []

        def on_frame(ts):
            seen.append(ts)
            frames.schedule(on_frame)

        frames.schedule(on_frame)
        clock.advance(118, frame_ms=[16, 33, 10])
        assert seen == [0.0, 16.0, 49.0, 59.0, 75.0, 108.0, 118.0]

    def test_interval_fires_at_exact_due_times(self):
        clock = ManualClock()
        timer = clock.interval_timer(1000)
        ticks = []
        timer.start(lambda: ticks.append(clock.now_ms))
        clock.advance(3500, frame_ms=300)
        assert ticks == [1000.0, 2000.0, 3000.0]

    def test_interval_restart_resets_phase(self):
        clock = ManualClock()
        timer = clock.interval_timer(1000)
        ticks = []
        timer.start(lambda: ticks.append(clock.now_ms))
        clock.advance(700)
        timer.stop()
        clock.advance(2000)
        timer.start(lambda: ticks.append(clock.now_ms))
        clock.advance(1000)
        assert ticks == [3700.0]

    def test_interval_can_stop_itself(self):
        clock = ManualClock()
        timer = clock.interval_timer(100)
        ticks = []

        def on_tick():
            ticks.append(clock.now_ms)
            if len(ticks) == 2:
                timer.stop()

        timer.start(on_tick)
        clock.advance(1000)
        assert ticks == [100.0, 200.0]
        assert not timer.is_active

    def test_negative_advance_rejected(self):
        with pytest.raises(ValueError):
            ManualClock().advance(-1)


class TestAsyncioSchedulers:
    @pytest.mark.asyncio
    async def test_frame_callback_receives_loop_time(self):
        loop = asyncio.get_running_loop()
        scheduler = AsyncioFrameScheduler(loop, frame_interval_ms=1)
        fired = loop.create_future()
        scheduler.schedule(fired.set_result)
        ts = await asyncio.wait_for(fired, timeout=1.0)
        assert ts == pytest.approx(loop.time() * 1000.0, abs=50)

    @pytest.mark.asyncio
    async def test_cancelled_frame_does_not_fire(self):
        scheduler = AsyncioFrameScheduler(frame_interval_ms=1)
        seen = []
        handle = scheduler.schedule(seen.append)
        handle.cancel()
        handle.cancel()
        await asyncio.sleep(0.02)
        assert seen == []
        assert handle.cancelled

    @pytest.mark.asyncio
    async def test_interval_timer_ticks_and_stops(self):
        timer = AsyncioIntervalTimer(interval_ms=10)
        ticks = []

        def on_tick():
            ticks.append(1)
            if len(ticks) == 3:
                timer.stop()

        timer.start(on_tick)
        assert timer.is_active
        await asyncio.sleep(0.1)
        assert len(ticks) == 3
        assert not timer.is_active


@pytest.mark.qt
class TestQtSchedulers:
    def test_qt_frame_scheduler_fires_once(self, qtbot):
        from nebrabreath.engine.qt_timers import QtFrameScheduler

        scheduler = QtFrameScheduler(frame_interval_ms=5)
        seen = []
        scheduler.schedule(seen.append)
        qtbot.waitUntil(lambda: len(seen) == 1, timeout=1000)
        qtbot.wait(30)
        assert len(seen) == 1

    def test_qt_frame_cancel(self, qtbot):
        from nebrabreath.engine.qt_timers import QtFrameScheduler

        scheduler = QtFrameScheduler(frame_interval_ms=5)
        seen = []
        handle = scheduler.schedule(seen.append)
        handle.cancel()
        handle.cancel()
        qtbot.wait(40)
        assert seen == []

    def test_qt_interval_timer(self, qtbot):
        from nebrabreath.engine.qt_timers import QtIntervalTimer

        timer = QtIntervalTimer(interval_ms=10)
        ticks = []
        timer.start(lambda: ticks.append(1))
        qtbot.waitUntil(lambda: len(ticks) >= 3, timeout=2000)
        timer.stop()
        assert not timer.is_active
