"""Store boundary: durable merge-save and load of per-file coverage.

``CoverageStore`` is what the collector talks to. ``MergingStore`` implements
it for stores that merge locally: subclasses provide raw bucket I/O and a lock
that makes read-merge-write atomic across every writer sharing the store.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Callable, Dict, List, Mapping, Optional

from ..hashing import FileHasher
from ..logging_config import get_logger
from ..merge import MergeEngine
from ..models import (
    BUCKETS,
    FileCoverage,
    LineCoverage,
    MergeMode,
    MergeResult,
    TrackingPhase,
    coverage_to_json,
)

logger = get_logger(__name__)


class CoverageStore(ABC):
    """Interface every store implements.

    ``merge_mode`` declares what ``save_report`` expects: ``ADD`` stores take
    deltas, ``MAX`` stores take cumulative snapshots of one phase. The
    collector refuses a store whose contract it does not produce.
    """

    merge_mode: MergeMode = MergeMode.ADD
    name = "store"

    @abstractmethod
    def save_report(
        self, report: Mapping[str, LineCoverage], phase: TrackingPhase = TrackingPhase.UNSET
    ) -> Optional[MergeResult]:
        """Durably merge a batch of per-file arrays."""

    @abstractmethod
    def get_coverage_report(self) -> Dict[str, FileCoverage]:
        """Merged coverage across phases."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all stored coverage."""

    @abstractmethod
    def clear_file(self, path: str) -> None:
        """Remove one file's coverage."""

    def coverage(self, phase: Optional[TrackingPhase] = None) -> Dict[str, FileCoverage]:
        return self.get_coverage_report()

    def covered_files(self) -> List[str]:
        return sorted(self.get_coverage_report())

    @property
    def size(self) -> int:
        """Serialized size of the combined report, in bytes."""
        return len(json.dumps(coverage_to_json(self.get_coverage_report())))

    @property
    def size_in_mib(self) -> str:
        return f"{self.size / 2**20:.2f}"

    def close(self) -> None:
        """Release resources. Stores without any are no-ops."""


class MergingStore(CoverageStore):
    """Store that merges batches itself under an exclusive lock."""

    def __init__(
        self,
        hasher: Optional[FileHasher] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.hasher = hasher or FileHasher()
        self.engine = MergeEngine(clock=clock)

    @abstractmethod
    def _locked(self) -> AbstractContextManager:
        """Exclusive section spanning one read-modify-write."""

    @abstractmethod
    def _read(self, bucket: str) -> Dict[str, FileCoverage]:
        """Load one bucket."""

    @abstractmethod
    def _write(self, bucket: str, coverage: Dict[str, FileCoverage], changed: List[str]) -> None:
        """Persist one bucket. ``changed`` names the records that differ from the last read."""

    def save_report(
        self, report: Mapping[str, LineCoverage], phase: TrackingPhase = TrackingPhase.UNSET
    ) -> MergeResult:
        """Merge ``report`` into the bucket for ``phase`` without losing concurrent updates."""
        hashes = self.hasher.hash_all(report)
        bucket = phase.bucket
        with self._locked():
            existing = self._read(bucket)
            result = self.engine.merge_report(existing, report, hashes, self.merge_mode)
            if result.changed:
                self._write(bucket, result.coverage, result.changed)
        logger.debug(
            "Saved %d files to %s (%s bucket, %d changed)",
            len(report),
            self.name,
            bucket,
            len(result.changed),
        )
        return result

    def coverage(self, phase: Optional[TrackingPhase] = None) -> Dict[str, FileCoverage]:
        """Stored coverage for one phase, or the combined view when ``phase`` is None."""
        if phase is not None:
            return self._read(phase.bucket)
        return self.get_coverage_report()

    def get_coverage_report(self) -> Dict[str, FileCoverage]:
        return self.engine.combine_phases(self._read("eager"), self._read("runtime"))

    def covered_files(self) -> List[str]:
        files: set = set()
        for bucket in BUCKETS:
            files.update(self._read(bucket))
        return sorted(files)
