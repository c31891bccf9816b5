"""Fixed-rate tick scheduler running on a background thread."""
from __future__ import annotations

import threading
import time
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


class TickScheduler:
    """Calls ``on_tick`` ``tps`` times per second until stopped.

    Ticks are serial and never overlap: ``run_tick`` holds ``lock`` for the
    duration of a tick and drops any tick requested while one is running.
    Code that must not interleave with a tick (persistence) takes ``lock``.
    """

    def __init__(self, tps: int, on_tick: Callable[[], None]) -> None:
        if tps <= 0:
            raise ValueError("tps must be positive")
        self._tps = tps
        self._on_tick = on_tick
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._dropped = 0
        self._tick_thread: int | None = None

    @property
    def tps(self) -> int:
        return self._tps

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    @property
    def dropped(self) -> int:
        """Ticks skipped because another tick was still running."""
        return self._dropped

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def in_tick(self) -> bool:
        """True when called from inside a running tick."""
        return self._tick_thread == threading.get_ident()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="tick-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("scheduler_started", tps=self._tps)

    def stop(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join()
        self._thread = None
        logger.info("scheduler_stopped")

    def set_tick_rate(self, tps: int) -> None:
        if tps <= 0:
            raise ValueError("tps must be positive")
        if self.in_tick():
            raise RuntimeError("Cannot change the tick rate from inside a tick")
        was_running = self.is_running()
        self.stop()
        self._tps = tps
        if was_running:
            self.start()

    def run_tick(self) -> bool:
        """Run one tick now. False if a tick was already in progress."""
        if not self._lock.acquire(blocking=False):
            self._dropped += 1
            logger.debug("tick_dropped", dropped=self._dropped)
            return False
        self._tick_thread = threading.get_ident()
        try:
            self._on_tick()
        finally:
            self._tick_thread = None
            self._lock.release()
        return True

    def _run_loop(self) -> None:
        dt = 1.0 / self._tps
        while not self._stop_event.is_set():
            start = time.monotonic()
            try:
                self.run_tick()
            except Exception:
                logger.exception("tick_failed")
                self._stop_event.set()
                break
            sleep_time = dt - (time.monotonic() - start)
            if sleep_time > 0:
                self._stop_event.wait(sleep_time)
