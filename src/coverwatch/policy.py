"""What the collector does with a failed flush.

In production a failure is logged (when verbose) and dropped: coverage must
never break the host application. Under test it is raised so bugs surface.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .config import CoverageConfig
from .logging_config import get_logger


class ErrorPolicy(Protocol):
    def handle(self, error: Exception) -> None: ...


class LogAndContinue:
    def __init__(self, verbose: bool = False, logger: Optional[logging.Logger] = None) -> None:
        self.verbose = verbose
        self.logger = logger or get_logger("collector")
        self.failures = 0

    def handle(self, error: Exception) -> None:
        self.failures += 1
        if self.verbose:
            self.logger.error("coverage failed to store: %r", error, exc_info=error)


class Propagate(LogAndContinue):
    def handle(self, error: Exception) -> None:
        super().handle(error)
        raise error


def error_policy_for(config: CoverageConfig) -> ErrorPolicy:
    if config.test_mode:
        return Propagate(verbose=config.verbose)
    return LogAndContinue(verbose=config.verbose)
