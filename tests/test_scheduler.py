"""
Tests for periodic task scheduling.
"""

import threading
import time

import pytest

from pipeline.scheduler import ManualTicker, PeriodicTask, ThreadTicker


class TestManualTicker:
    def test_fires_only_while_running(self):
        ticker = ManualTicker()
        calls = []

        assert ticker.tick() == 0

        ticker.start(lambda: calls.append(1), 0.02)
        assert ticker.tick(3) == 3
        ticker.stop()
        assert ticker.tick() == 0
        assert len(calls) == 3
        assert ticker.period == 0.02


class TestPeriodicTask:
    def test_counts_processed_and_missed(self):
        ticker = ManualTicker()
        results = iter([True, False, None])
        task = PeriodicTask("t", 0.02, lambda: next(results), ticker)

        task.start()
        ticker.tick(3)

        assert task.stats.processed == 2
        assert task.stats.missed == 1

    def test_failure_is_logged_and_counted(self):
        ticker = ManualTicker()

        def work():
            raise RuntimeError("camera glitch")

        task = PeriodicTask("t", 0.02, work, ticker)
        task.start()
        ticker.tick(2)

        assert task.stats.failed == 2
        assert task.is_running

    def test_start_and_stop_are_idempotent(self):
        ticker = ManualTicker()
        task = PeriodicTask("t", 0.02, lambda: True, ticker)

        task.stop()
        task.start()
        task.start()
        assert task.is_running
        task.stop()
        task.stop()
        assert not task.is_running
        assert not ticker.running

    def test_overlapping_tick_is_skipped(self):
        """A tick arriving while the previous one runs never runs concurrently."""
        ticker = ManualTicker()
        entered = threading.Event()
        release = threading.Event()
        active = []
        max_active = []

        def slow_work():
            active.append(1)
            max_active.append(len(active))
            entered.set()
            release.wait(timeout=2.0)
            active.pop()
            return True

        task = PeriodicTask("slow", 0.02, slow_work, ticker)
        task.start()

        first = threading.Thread(target=ticker.tick)
        first.start()
        assert entered.wait(timeout=2.0)

        ticker.tick()  # arrives while the first tick still runs

        release.set()
        first.join(timeout=2.0)

        assert task.stats.processed == 1
        assert task.stats.skipped == 1
        assert max(max_active) == 1

    def test_stop_waits_for_in_flight_tick(self):
        ticker = ManualTicker()
        entered = threading.Event()
        finished = []

        def work():
            entered.set()
            time.sleep(0.1)
            finished.append(True)
            return True

        task = PeriodicTask("t", 0.02, work, ticker)
        task.start()
        worker = threading.Thread(target=ticker.tick)
        worker.start()
        assert entered.wait(timeout=2.0)

        task.stop()

        assert finished == [True]
        worker.join(timeout=2.0)

    def test_stop_from_inside_tick_does_not_deadlock(self):
        ticker = ManualTicker()
        task = PeriodicTask("t", 0.02, lambda: task.stop(), ticker)

        task.start()
        ticker.tick()

        assert not task.is_running


class TestThreadTicker:
    def test_fires_periodically_until_stopped(self):
        ticker = ThreadTicker("test-ticker")
        calls = []

        ticker.start(lambda: calls.append(time.monotonic()), 0.01)
        deadline = time.time() + 2.0
        while len(calls) < 3 and time.time() < deadline:
            time.sleep(0.005)
        ticker.stop()

        count = len(calls)
        time.sleep(0.05)

        assert count >= 3
        assert len(calls) == count

    def test_periodic_task_with_thread_ticker(self):
        done = threading.Event()
        task = PeriodicTask("real", 0.01, lambda: done.set(), ThreadTicker("real"))

        task.start()
        try:
            assert done.wait(timeout=2.0)
        finally:
            task.stop()

        assert task.stats.processed >= 1
