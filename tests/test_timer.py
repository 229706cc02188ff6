"""Tests for the tick scheduler and the round timer."""

import asyncio

import pytest

from staring_contest.timer import RoundTimer, Ticker

from conftest import ManualClock, settle


def run(coro):
    return asyncio.run(coro)


class TestTicker:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            Ticker(0, lambda: None)

    def test_ticks_once_per_interval(self):
        async def scenario():
            clock = ManualClock()
            ticks = []
            ticker = Ticker(1.0, lambda: ticks.append(1), sleep=clock.sleep)
            ticker.start()
            await settle()
            assert ticks == []
            for _ in range(3):
                await clock.advance()
            ticker.stop()
            return len(ticks)

        assert run(scenario()) == 3

    def test_stop_prevents_pending_tick(self):
        async def scenario():
            clock = ManualClock()
            ticks = []
            ticker = Ticker(1.0, lambda: ticks.append(1), sleep=clock.sleep)
            ticker.start()
            await settle()
            ticker.stop()
            await clock.advance()
            return ticks, ticker.running

        ticks, running = run(scenario())
        assert ticks == []
        assert not running

    def test_restart_keeps_single_task(self):
        async def scenario():
            clock = ManualClock()
            ticks = []
            ticker = Ticker(1.0, lambda: ticks.append(1), sleep=clock.sleep)
            ticker.start()
            ticker.start()
            ticker.start()
            await settle()
            await clock.advance()
            ticker.stop()
            return len(ticks)

        assert run(scenario()) == 1

    def test_stop_from_callback(self):
        async def scenario():
            clock = ManualClock()
            ticks = []

            def callback():
                ticks.append(1)
                ticker.stop()

            ticker = Ticker(1.0, callback, sleep=clock.sleep)
            ticker.start()
            await settle()
            await clock.advance()
            await clock.advance()
            return len(ticks), clock.sleepers

        assert run(scenario()) == (1, 0)

    def test_async_callback_awaited(self):
        async def scenario():
            clock = ManualClock()
            ticks = []

            async def callback():
                await asyncio.sleep(0)
                ticks.append(1)

            ticker = Ticker(1.0, callback, sleep=clock.sleep)
            ticker.start()
            await settle()
            await clock.advance()
            await clock.advance()
            ticker.stop()
            return len(ticks)

        assert run(scenario()) == 2

    def test_failing_callback_keeps_ticking(self, caplog):
        async def scenario():
            clock = ManualClock()
            calls = []

            def callback():
                calls.append(1)
                if len(calls) == 1:
                    raise RuntimeError("boom")

            ticker = Ticker(1.0, callback, sleep=clock.sleep, name="countdown")
            ticker.start()
            await settle()
            await clock.advance()
            await clock.advance()
            running = ticker.running
            ticker.stop()
            return len(calls), running

        with caplog.at_level("ERROR", logger="staring_contest.timer"):
            assert run(scenario()) == (2, True)
        assert "countdown tick failed" in caplog.text

    def test_stop_without_start(self):
        ticker = Ticker(1.0, lambda: None)
        ticker.stop()
        assert not ticker.running


class TestRoundTimer:
    def test_counts_whole_seconds(self):
        async def scenario():
            clock = ManualClock()
            timer = RoundTimer(sleep=clock.sleep)
            seen = []
            timer.on_tick(seen.append)
            timer.start()
            await settle()
            for _ in range(4):
                await clock.advance()
            timer.stop()
            return timer.elapsed, seen

        elapsed, seen = run(scenario())
        assert elapsed == 4
        assert seen == [1, 2, 3, 4]

    def test_stop_freezes(self):
        async def scenario():
            clock = ManualClock()
            timer = RoundTimer(sleep=clock.sleep)
            timer.start()
            await settle()
            await clock.advance()
            await clock.advance()
            timer.stop()
            await clock.advance()
            return timer.elapsed, timer.running

        assert run(scenario()) == (2, False)

    def test_start_zeroes(self):
        async def scenario():
            clock = ManualClock()
            timer = RoundTimer(sleep=clock.sleep)
            timer.start()
            await settle()
            await clock.advance()
            timer.stop()
            timer.start()
            first = timer.elapsed
            await settle()
            await clock.advance()
            timer.stop()
            return first, timer.elapsed

        assert run(scenario()) == (0, 1)

    def test_reset(self):
        async def scenario():
            clock = ManualClock()
            timer = RoundTimer(sleep=clock.sleep)
            timer.start()
            await settle()
            await clock.advance()
            timer.reset()
            await clock.advance()
            return timer.elapsed, timer.running

        assert run(scenario()) == (0, False)

    def test_failing_listener_does_not_stop_timer(self):
        async def scenario():
            clock = ManualClock()
            timer = RoundTimer(sleep=clock.sleep)

            def broken(elapsed):
                raise RuntimeError("boom")

            timer.on_tick(broken)
            timer.start()
            await settle()
            await clock.advance()
            await clock.advance()
            timer.stop()
            return timer.elapsed

        assert run(scenario()) == 2
