"""Combine line coverage arrays into the durable per-file aggregate.

Every merge names its mode explicitly:

- ``MergeMode.ADD`` sums counts. Use it when the incoming array is a delta
  since the previous sample. Addition is associative and commutative, so
  concurrent writers converge on the same totals in any order.
- ``MergeMode.MAX`` keeps the larger count. Use it when the incoming array is
  a cumulative snapshot of the same phase, where summing would double count.

``None`` marks a line without code. ``None`` meeting ``None`` stays ``None``;
``None`` meeting a count becomes the count and is recorded as a conflict,
since line tables can shift between interpreter runs.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .logging_config import get_logger
from .models import (
    FileCoverage,
    LineConflict,
    LineCoverage,
    MergeMode,
    MergeResult,
)

logger = get_logger(__name__)


def _now() -> int:
    return int(time.time())


def merge_lines(
    existing: LineCoverage, incoming: LineCoverage, mode: MergeMode
) -> Tuple[LineCoverage, List[int]]:
    """Element-wise combine two arrays, padding the shorter with ``None``.

    Returns the merged array and the 1-based line numbers whose code/no-code
    status disagreed.
    """
    size = max(len(existing), len(incoming))
    merged: LineCoverage = []
    conflicts: List[int] = []
    for i in range(size):
        a = existing[i] if i < len(existing) else None
        b = incoming[i] if i < len(incoming) else None
        if a is None and b is None:
            merged.append(None)
        elif a is None or b is None:
            # Padding beyond one array's end is not a disagreement
            if i < len(existing) and i < len(incoming):
                conflicts.append(i + 1)
            merged.append(a if b is None else b)
        elif mode is MergeMode.ADD:
            merged.append(a + b)
        else:
            merged.append(max(a, b))
    return merged, conflicts


class MergeEngine:
    """Merges incoming line arrays into ``FileCoverage`` records.

    ``clock`` returns integer epoch seconds and is injectable for tests.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self.clock = clock or _now
        self.inconsistencies = 0

    def merge_file(
        self,
        path: str,
        existing: Optional[FileCoverage],
        incoming: LineCoverage,
        incoming_hash: Optional[str],
        mode: MergeMode,
        now: Optional[int] = None,
    ) -> Tuple[FileCoverage, List[LineConflict]]:
        """Merge one file.

        Absent history, or history recorded against different file contents,
        starts over from ``incoming`` with both timestamps set to ``now``.
        ``last_updated_at`` only moves when the data actually changes.
        """
        now = self.clock() if now is None else now

        if existing is None or existing.file_hash != incoming_hash:
            if existing is not None:
                logger.debug("Content hash changed for %s, resetting history", path)
            return (
                FileCoverage(
                    data=list(incoming),
                    file_hash=incoming_hash,
                    first_updated_at=now,
                    last_updated_at=now,
                ),
                [],
            )

        data, lines = merge_lines(existing.data, incoming, mode)
        conflicts = [
            LineConflict(
                path=path,
                lineno=n,
                existing=existing.data[n - 1],
                incoming=incoming[n - 1],
            )
            for n in lines
        ]
        if conflicts:
            self.inconsistencies += len(conflicts)
            logger.debug(
                "Line classification disagreed for %s on lines %s", path, lines
            )

        changed = data != existing.data
        return (
            FileCoverage(
                data=data,
                file_hash=existing.file_hash,
                first_updated_at=existing.first_updated_at,
                last_updated_at=now if changed else existing.last_updated_at,
            ),
            conflicts,
        )

    def merge_report(
        self,
        existing: Mapping[str, FileCoverage],
        report: Mapping[str, LineCoverage],
        hashes: Mapping[str, Optional[str]],
        mode: MergeMode,
        now: Optional[int] = None,
    ) -> MergeResult:
        """Merge a batch into a copy of ``existing``. Files absent from the batch pass through."""
        now = self.clock() if now is None else now
        result = MergeResult(coverage=dict(existing))
        for path, lines in report.items():
            previous = existing.get(path)
            incoming_hash = hashes.get(path)
            record, conflicts = self.merge_file(path, previous, lines, incoming_hash, mode, now)
            if previous is not None and previous.file_hash != incoming_hash:
                result.reset.append(path)
            if previous is None or record != previous:
                result.changed.append(path)
            result.conflicts.extend(conflicts)
            result.coverage[path] = record
        return result

    def combine_phases(
        self,
        eager: Mapping[str, FileCoverage],
        runtime: Mapping[str, FileCoverage],
    ) -> Dict[str, FileCoverage]:
        """Read-side view over both phases.

        Eager and runtime windows never overlap, so their counts add. When the
        two records were taken against different file contents, the most
        recently updated one wins.
        """
        combined: Dict[str, FileCoverage] = {}
        for path in sorted(set(eager) | set(runtime)):
            a = eager.get(path)
            b = runtime.get(path)
            if a is None or b is None:
                only = a if b is None else b
                assert only is not None
                combined[path] = FileCoverage(
                    data=list(only.data),
                    file_hash=only.file_hash,
                    first_updated_at=only.first_updated_at,
                    last_updated_at=only.last_updated_at,
                )
                continue
            if a.file_hash != b.file_hash:
                newer = a if a.last_updated_at > b.last_updated_at else b
                combined[path] = FileCoverage(
                    data=list(newer.data),
                    file_hash=newer.file_hash,
                    first_updated_at=newer.first_updated_at,
                    last_updated_at=newer.last_updated_at,
                )
                continue
            data, _ = merge_lines(a.data, b.data, MergeMode.ADD)
            combined[path] = FileCoverage(
                data=data,
                file_hash=a.file_hash,
                first_updated_at=min(a.first_updated_at, b.first_updated_at),
                last_updated_at=max(a.last_updated_at, b.last_updated_at),
            )
        return combined
