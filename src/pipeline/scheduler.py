"""
Periodic task scheduling for the capture and inference loops.

A PeriodicTask owns the work function and guarantees ticks never overlap;
the Ticker decides *when* ticks fire. Production uses ThreadTicker (wall
clock on a daemon thread); tests use ManualTicker and fire ticks by hand.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol


class Ticker(Protocol):
    def start(self, callback: Callable[[], None], period: float) -> None:
        ...

    def stop(self) -> None:
        ...


class ThreadTicker:
    """Fire callback every `period` seconds on a daemon thread.

    Late ticks are dropped rather than bunched up: if a callback overruns,
    the next tick is scheduled one period after it returns.
    """

    def __init__(self, name: str = "ticker"):
        self.name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self, callback: Callable[[], None], period: float) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            args=(callback, period, self._stop_event),
            name=self.name,
            daemon=True,
        )
        self._thread.start()

    @staticmethod
    def _loop(callback: Callable[[], None], period: float, stop_event: threading.Event) -> None:
        next_due = time.monotonic() + period
        while not stop_event.wait(max(0.0, next_due - time.monotonic())):
            callback()
            next_due += period
            now = time.monotonic()
            if next_due < now:
                next_due = now + period

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None


class ManualTicker:
    """Test ticker: nothing fires until tick() is called."""

    def __init__(self):
        self.callback: Optional[Callable[[], None]] = None
        self.period: Optional[float] = None
        self.running = False

    def start(self, callback: Callable[[], None], period: float) -> None:
        self.callback = callback
        self.period = period
        self.running = True

    def stop(self) -> None:
        self.running = False

    def tick(self, count: int = 1) -> int:
        """Fire up to `count` ticks; returns how many fired."""
        fired = 0
        for _ in range(count):
            if not self.running or self.callback is None:
                break
            self.callback()
            fired += 1
        return fired


@dataclass
class TickStats:
    """Counters for one periodic task."""
    processed: int = 0
    missed: int = 0
    skipped: int = 0
    failed: int = 0


class PeriodicTask:
    """
    Run `work` on every tick while started.

    work() returns False when it had nothing to do (e.g. no frame yet); that
    tick is counted as missed. A tick that arrives while the previous one is
    still running is skipped, and a tick that raises is logged and counted as
    failed. Neither stops the task.
    """

    def __init__(
        self,
        name: str,
        period: float,
        work: Callable[[], Optional[bool]],
        ticker: Optional[Ticker] = None,
    ):
        self.name = name
        self.period = period
        self._work = work
        self._ticker = ticker or ThreadTicker(name)
        self._running = False
        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._tick_thread: Optional[int] = None
        self.stats = TickStats()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._state_lock:
            if self._running:
                return
            self._running = True
            self._ticker.start(self._on_tick, self.period)
        logging.debug(f"{self.name} task started (period={self.period}s)")

    def stop(self) -> None:
        """Stop future ticks and wait for an in-flight tick to finish."""
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            self._ticker.stop()
        if self._tick_thread != threading.get_ident():
            with self._tick_lock:
                pass
        logging.debug(f"{self.name} task stopped: {self.stats}")

    def _on_tick(self) -> None:
        if not self._running:
            return
        if not self._tick_lock.acquire(blocking=False):
            with self._stats_lock:
                self.stats.skipped += 1
            logging.debug(f"{self.name} tick skipped, previous tick still running")
            return

        self._tick_thread = threading.get_ident()
        try:
            did_work = self._work()
            with self._stats_lock:
                if did_work is False:
                    self.stats.missed += 1
                else:
                    self.stats.processed += 1
        except Exception as e:
            with self._stats_lock:
                self.stats.failed += 1
            logging.warning(f"{self.name} tick failed: {e}")
        finally:
            self._tick_thread = None
            self._tick_lock.release()
