"""
Periodic Ticker - Drives a subsystem's tick() body from a background thread
"""

import threading
from typing import Any, Callable, Optional

from team_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)


class PeriodicTicker:
    """
    Calls `tick_fn` every `interval` seconds on a daemon thread.

    The wait uses a stop event, so stop() returns promptly instead of
    sleeping out the remaining interval. An exception raised by one tick is
    logged and the next tick still runs.

    Usage:
        ticker = PeriodicTicker("bus", bus.tick, interval=0.1)
        ticker.start()
        ...
        ticker.stop()
    """

    def __init__(self, name: str, tick_fn: Callable[[], Any], interval: float):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.tick_fn = tick_fn
        self.interval = interval
        self.thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.tick_count = 0
        self.error_count = 0

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.tick_fn()
                self.tick_count += 1
            except Exception as e:
                self.error_count += 1
                logger.exception(f"[TICKER] {self.name} tick failed: {e}")

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, name=f"ticker-{self.name}", daemon=True)
        self.thread.start()
        logger.debug(f"[TICKER] {self.name} started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=timeout)
        self.thread = None
        logger.debug(f"[TICKER] {self.name} stopped after {self.tick_count} ticks")
