"""Periodic flushing off the request path."""

from __future__ import annotations

import threading

from .collector import CoverageCollector
from .logging_config import get_logger

logger = get_logger(__name__)

# How long stop() waits for the thread before giving up on it
JOIN_TIMEOUT_SECONDS = 5.0


class BackgroundReporter:
    """Calls ``collector.report_coverage()`` every ``interval`` seconds.

    Runs as a daemon thread so it never holds the interpreter open. ``stop()``
    wakes the thread, which performs one last flush before exiting unless
    asked not to.
    """

    def __init__(self, collector: CoverageCollector, interval: float) -> None:
        self.collector = collector
        self.interval = interval

        self._stop_event = threading.Event()
        self._final_flush = True
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the reporter thread. No-op if already running."""
        if self.running:
            return
        self._stop_event.clear()
        self._final_flush = True
        self._thread = threading.Thread(
            target=self._loop,
            name="coverwatch-reporter",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Background reporter started (every %.1fs)", self.interval)

    def stop(self, flush: bool = True) -> None:
        """Signal the reporter to exit, flushing once more when ``flush`` is set."""
        self._final_flush = flush
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=JOIN_TIMEOUT_SECONDS)
            if self._thread.is_alive():
                logger.warning(
                    "Reporter thread did not exit within %.0f seconds", JOIN_TIMEOUT_SECONDS
                )
            else:
                logger.debug("Background reporter stopped")
            self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self._report()
        if self._final_flush:
            self._report()

    def _report(self) -> None:
        try:
            self.collector.report_coverage()
        except Exception:
            # Test-mode policies re-raise; a dead reporter thread helps nobody
            logger.exception("Background coverage report failed")
