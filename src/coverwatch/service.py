"""Startup wiring: one coverage service per process.

Usage::

    from coverwatch.service import CoverageService

    service = CoverageService.from_config(load_config())
    service.start()          # before the application is imported
    import myapp             # boot-time coverage lands in the eager bucket
    service.runtime()        # once the app starts serving traffic

    app = CoverageMiddleware(myapp.app, service.collector)
"""

from __future__ import annotations

import atexit
import threading
from typing import Optional

from .background import BackgroundReporter
from .collector import CoverageCollector
from .config import CoverageConfig
from .logging_config import get_logger, setup_logging
from .probe import RuntimeProbe
from .stores import CoverageStore, build_store

logger = get_logger(__name__)


class CoverageService:
    """Owns the collector, its store, and the reporter thread.

    ``shutdown()`` runs at most once, whether called directly or from the
    ``atexit`` hook.
    """

    def __init__(
        self,
        config: CoverageConfig,
        collector: CoverageCollector,
        reporter: Optional[BackgroundReporter] = None,
    ) -> None:
        self.config = config
        self.collector = collector
        self.reporter = reporter

        self._shutdown_lock = threading.Lock()
        self._shutdown_complete = False
        self._exit_hook_installed = False

    @classmethod
    def from_config(
        cls,
        config: CoverageConfig,
        store: Optional[CoverageStore] = None,
        probe: Optional[RuntimeProbe] = None,
        configure_logging: bool = True,
    ) -> "CoverageService":
        if configure_logging:
            setup_logging(verbose=config.verbose, log_file=config.log_file)
        collector = CoverageCollector(
            config,
            store if store is not None else build_store(config),
            probe=probe,
        )
        reporter = None
        if config.background_reporting_enabled:
            reporter = BackgroundReporter(collector, config.background_reporting_sleep_seconds)
        return cls(config, collector, reporter)

    def start(self) -> None:
        """Begin eager-phase counting and install the exit hook."""
        self.collector.eager_loading()
        if self.config.report_on_exit and not self._exit_hook_installed:
            atexit.register(self.shutdown)
            self._exit_hook_installed = True

    def runtime(self) -> None:
        """Switch to the runtime phase and start periodic flushing."""
        self.collector.runtime()
        if self.reporter is not None:
            self.reporter.start()

    @property
    def background_reporting(self) -> bool:
        return self.reporter is not None and self.reporter.running

    def shutdown(self) -> None:
        """Stop the reporter and flush what is left. Safe to call multiple times."""
        with self._shutdown_lock:
            if self._shutdown_complete:
                return
            self._shutdown_complete = True

        if self.reporter is not None and self.reporter.running:
            self.reporter.stop(flush=self.config.report_on_exit)
        elif self.config.report_on_exit:
            self.collector.report_coverage()

        if self._exit_hook_installed:
            atexit.unregister(self.shutdown)
            self._exit_hook_installed = False
        self.collector.store.close()
        logger.debug("Coverage service shut down")
