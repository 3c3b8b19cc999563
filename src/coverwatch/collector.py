"""The per-process coverage collector.

Reads the probe, turns cumulative counts into a delta, drops files outside the
project and files with nothing new, and hands the rest to the store. One
collector per process; the host's startup code builds it and passes it to
whatever needs to flush (middleware, background thread, exit hook).

State machine::

    UNINITIALIZED --eager_loading()--> EAGER --runtime()--> RUNTIME
    UNINITIALIZED --runtime()----------------------------> RUNTIME

Nothing returns to EAGER.
"""

from __future__ import annotations

import threading
from typing import Optional

from .classifier import FileClassifier
from .config import CoverageConfig
from .exceptions import CollectorStateError, ConfigurationError
from .logging_config import get_logger
from .merge import merge_lines
from .models import CollectorState, Delta, MergeMode, TrackingPhase, has_hits
from .policy import ErrorPolicy, error_policy_for
from .probe import RuntimeProbe, TraceProbe
from .stores.base import CoverageStore
from .tracker import DeltaTracker

logger = get_logger(__name__)

_PHASES = {
    CollectorState.UNINITIALIZED: TrackingPhase.UNSET,
    CollectorState.EAGER: TrackingPhase.EAGER,
    CollectorState.RUNTIME: TrackingPhase.RUNTIME,
}


class CoverageCollector:
    """Delta computation and flush under one process-wide lock.

    The lock covers the snapshot read, the diff against the previous
    snapshot, filtering, and the store call, so two threads can never diff
    against the same previous snapshot and double count.
    """

    def __init__(
        self,
        config: CoverageConfig,
        store: Optional[CoverageStore],
        probe: Optional[RuntimeProbe] = None,
        error_policy: Optional[ErrorPolicy] = None,
        tracker: Optional[DeltaTracker] = None,
    ) -> None:
        if store is None:
            raise ConfigurationError("no coverage store set")
        if store.merge_mode is not MergeMode.ADD:
            raise ConfigurationError(
                "collector sends deltas but store expects cumulative snapshots",
                details={"store": store.name, "merge_mode": store.merge_mode.value},
            )

        self.config = config
        self.store = store
        self.probe: RuntimeProbe = probe if probe is not None else TraceProbe()
        self.error_policy: ErrorPolicy = error_policy or error_policy_for(config)
        self.tracker = tracker or DeltaTracker()
        self.classifier = FileClassifier.from_config(config)

        self._lock = threading.Lock()
        self._state = CollectorState.UNINITIALIZED

    # ── state ────────────────────────────────────────────────────

    @property
    def state(self) -> CollectorState:
        return self._state

    @property
    def phase(self) -> TrackingPhase:
        return _PHASES[self._state]

    def eager_loading(self) -> None:
        """Enter the boot phase and start counting. Call before application imports."""
        with self._lock:
            if self._state is CollectorState.EAGER:
                return
            if self._state is not CollectorState.UNINITIALIZED:
                raise CollectorStateError(self._state.value, CollectorState.EAGER.value)
            self._start_probe()
            self._state = CollectorState.EAGER
        logger.debug("Collector entered eager phase")

    def runtime(self) -> None:
        """Enter the traffic-serving phase.

        Anything counted during boot is flushed under the eager phase first,
        so boot-time loading never shows up as runtime coverage.
        """
        with self._lock:
            if self._state is CollectorState.RUNTIME:
                return
            if self._state is CollectorState.EAGER:
                try:
                    self._flush()
                except Exception as e:
                    self.error_policy.handle(e)
            self._start_probe()
            self._state = CollectorState.RUNTIME
        logger.debug("Collector entered runtime phase")

    def _start_probe(self) -> None:
        if not self.probe.running():
            self.probe.start()

    # ── flushing ─────────────────────────────────────────────────

    def report_coverage(self) -> Delta:
        """Flush new line hits to the store.

        Returns the batch handed to the store (empty when nothing changed or
        the flush failed). Failures go to the error policy.
        """
        try:
            with self._lock:
                return self._flush()
        except Exception as e:
            self.error_policy.handle(e)
            return {}

    def _flush(self) -> Delta:
        delta = self.tracker.compute(self.probe.snapshot())
        batch = self.filter_delta(delta)
        if batch:
            self.store.save_report(batch, self.phase)
            logger.debug("Reported %d files (%s)", len(batch), self.phase.value)
        return batch

    def filter_delta(self, delta: Delta) -> Delta:
        """Keep tracked files whose delta has at least one nonzero line.

        Paths become store keys; copies of one file under different roots
        are summed into a single entry.
        """
        classifier = self.classifier
        batch: Delta = {}
        for path, lines in delta.items():
            if not classifier.is_tracked(path) or not has_hits(lines):
                continue
            key = classifier.relative_key(path)
            if key in batch:
                batch[key], _ = merge_lines(batch[key], lines, MergeMode.ADD)
            else:
                batch[key] = lines
        return batch

    def reset(self, config: Optional[CoverageConfig] = None) -> None:
        """Rebuild the classifier from config and forget the previous snapshot.

        The next flush after a reset reports every file's cumulative counts
        again, as if seen for the first time.
        """
        with self._lock:
            if config is not None:
                self.config = config
            self.classifier = FileClassifier.from_config(self.config)
            self.tracker.reset()
