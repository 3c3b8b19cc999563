"""Data models for line coverage: arrays, deltas, and merged per-file records.

A line coverage array holds one slot per source line (index 0 is line 1).
``None`` marks a line with no executable code; an ``int`` is the number of
times the line ran. Zero and ``None`` are different: zero means the line is
code that has not run (or did not run during a sample).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

LineCoverage = List[Optional[int]]

# path -> cumulative hits since the probe started
Snapshot = Dict[str, LineCoverage]

# path -> hits accrued since the previous sample
Delta = Dict[str, LineCoverage]


class TrackingPhase(Enum):
    """Which collection phase produced a flush."""

    UNSET = "unset"
    EAGER = "eager"
    RUNTIME = "runtime"

    @property
    def bucket(self) -> str:
        """Storage bucket for this phase. Unset flushes count as runtime."""
        if self is TrackingPhase.EAGER:
            return "eager"
        return "runtime"


BUCKETS = ("eager", "runtime")


class MergeMode(Enum):
    """How incoming line counts combine with existing ones.

    ADD: incoming is a delta since the last sample; counts are summed.
    MAX: incoming is a cumulative snapshot of the same phase; the larger wins.
    """

    ADD = "add"
    MAX = "max"


class CollectorState(Enum):
    UNINITIALIZED = "uninitialized"
    EAGER = "eager"
    RUNTIME = "runtime"


class Classification(Enum):
    TRACKED = "tracked"
    IGNORED = "ignored"


@dataclass
class FileCoverage:
    """Merged coverage history for one file."""

    data: LineCoverage
    file_hash: Optional[str] = None
    first_updated_at: int = 0
    last_updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": list(self.data),
            "file_hash": self.file_hash,
            "first_updated_at": self.first_updated_at,
            "last_updated_at": self.last_updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FileCoverage":
        return cls(
            data=[None if v is None else int(v) for v in raw.get("data", [])],
            file_hash=raw.get("file_hash"),
            first_updated_at=int(raw.get("first_updated_at") or 0),
            last_updated_at=int(raw.get("last_updated_at") or 0),
        )

    @property
    def relevant_lines(self) -> int:
        """Number of executable lines."""
        return sum(1 for v in self.data if v is not None)

    @property
    def covered_lines(self) -> int:
        return sum(1 for v in self.data if v)

    @property
    def percent_covered(self) -> float:
        relevant = self.relevant_lines
        if relevant == 0:
            return 0.0
        return 100.0 * self.covered_lines / relevant


@dataclass
class LineConflict:
    """A line whose NoCode/Count status disagreed between two samples."""

    path: str
    lineno: int
    existing: Optional[int]
    incoming: Optional[int]


@dataclass
class MergeResult:
    """Outcome of merging one batch into a stored coverage map."""

    coverage: Dict[str, FileCoverage] = field(default_factory=dict)
    changed: List[str] = field(default_factory=list)
    reset: List[str] = field(default_factory=list)
    conflicts: List[LineConflict] = field(default_factory=list)


def has_hits(lines: LineCoverage) -> bool:
    """True if any line in the array has a nonzero count."""
    return any(v for v in lines)


def coverage_to_json(coverage: Dict[str, FileCoverage]) -> Dict[str, Dict[str, Any]]:
    return {path: record.to_dict() for path, record in coverage.items()}


def coverage_from_json(raw: Optional[Dict[str, Any]]) -> Dict[str, FileCoverage]:
    if not raw:
        return {}
    return {path: FileCoverage.from_dict(record) for path, record in raw.items()}
