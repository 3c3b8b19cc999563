"""Turn cumulative probe snapshots into per-sample deltas."""

from __future__ import annotations

from typing import Dict, Optional

from .logging_config import get_logger
from .models import Delta, LineCoverage, Snapshot

logger = get_logger(__name__)


def line_delta(current: LineCoverage, previous: Optional[LineCoverage]) -> LineCoverage:
    """Hits accrued on each line between two cumulative arrays of one file.

    A file seen for the first time yields ``current`` unchanged. A shorter
    array, or any count that went down, means the file or the probe was
    reset, so the current array is again taken as a first observation.
    """
    if previous is None or len(current) < len(previous):
        return list(current)

    result: LineCoverage = []
    prev_len = len(previous)
    for i, count in enumerate(current):
        if count is None:
            result.append(None)
            continue
        before = previous[i] if i < prev_len else None
        if before is None:
            result.append(count)
        elif count < before:
            return list(current)
        else:
            result.append(count - before)
    return result


class DeltaTracker:
    """Holds the last observed snapshot and diffs each new one against it.

    Not thread-safe on its own; the collector serializes calls.
    """

    def __init__(self) -> None:
        self._previous: Dict[str, LineCoverage] = {}

    def compute(self, current: Snapshot) -> Delta:
        """Delta since the previous call; the previous snapshot becomes ``current``."""
        delta: Delta = {}
        latest: Dict[str, LineCoverage] = {}
        for path, counts in current.items():
            # Copy first: the probe keeps counting while we read
            counts = list(counts)
            latest[path] = counts
            delta[path] = line_delta(counts, self._previous.get(path))

        # Files the probe stopped reporting keep their last state
        for path, counts in self._previous.items():
            latest.setdefault(path, counts)
        self._previous = latest
        logger.debug("Computed delta for %d files", len(delta))
        return delta

    def reset(self) -> None:
        self._previous = {}

    @property
    def tracked_files(self) -> int:
        return len(self._previous)
