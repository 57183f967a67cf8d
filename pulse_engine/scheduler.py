"""
Fixed-period tick scheduler.

Runs a callback on a background thread every ``period`` seconds, measured
against a monotonic clock and independent of frame arrival.  If a tick
overruns its slot the missed slots are skipped rather than queued.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TickScheduler:
    """
    Background timer for periodic estimation.

    Parameters
    ----------
    callback:
        Zero-argument callable invoked once per tick.
    period:
        Seconds between tick start times.
    name:
        Thread name, shows up in log records.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        period: float,
        name: str = "pulse-tick",
    ) -> None:
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.callback = callback
        self.period = period
        self.name = name

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._ticks = 0
        self._skipped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Tick scheduler started – period=%.2f s", self.period)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Tick scheduler stopped after %d ticks (%d skipped).",
                        self._ticks, self._skipped)

    def __enter__(self) -> "TickScheduler":
        self.start()
        return self

    def __exit__(self, *_) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks(self) -> int:
        """Number of callback invocations so far."""
        return self._ticks

    @property
    def skipped(self) -> int:
        """Number of slots dropped because a tick overran."""
        return self._skipped

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self) -> None:
        next_due = time.monotonic()
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                self.callback()
            except Exception:                               # noqa: BLE001
                logger.exception("Tick callback failed.")
            self._ticks += 1

            next_due += self.period
            now = time.monotonic()
            if now > next_due:
                missed = int((now - next_due) // self.period) + 1
                self._skipped += missed
                next_due += missed * self.period
                logger.warning(
                    "Tick overran its slot (%.3f s > %.3f s); skipping %d slot(s).",
                    now - started, self.period, missed,
                )
            self._stop.wait(max(0.0, next_due - time.monotonic()))
