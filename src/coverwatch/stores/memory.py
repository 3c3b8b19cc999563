"""In-process store, for tests and single-process hosts."""

import copy
import threading
from typing import Dict, List

from ..models import BUCKETS, FileCoverage
from .base import MergingStore


class MemoryStore(MergingStore):
    name = "memory"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._lock = threading.RLock()
        self._buckets: Dict[str, Dict[str, FileCoverage]] = {b: {} for b in BUCKETS}

    def _locked(self):
        return self._lock

    def _read(self, bucket: str) -> Dict[str, FileCoverage]:
        with self._lock:
            return copy.deepcopy(self._buckets[bucket])

    def _write(self, bucket: str, coverage: Dict[str, FileCoverage], changed: List[str]) -> None:
        with self._lock:
            self._buckets[bucket] = copy.deepcopy(coverage)

    def clear(self) -> None:
        with self._lock:
            self._buckets = {b: {} for b in BUCKETS}

    def clear_file(self, path: str) -> None:
        with self._lock:
            for coverage in self._buckets.values():
                coverage.pop(path, None)
