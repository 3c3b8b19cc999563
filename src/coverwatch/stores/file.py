"""JSON file store shared by processes on one host.

The document holds one map per bucket::

    {"eager": {path: record, ...}, "runtime": {path: record, ...}}

A sibling ``.lock`` file taken with ``flock`` serializes writers; the
document itself is swapped in with ``os.replace`` so readers never see a
partial write.
"""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

from ..exceptions import PersistenceError, StoreTimeoutError
from ..logging_config import get_logger
from ..models import BUCKETS, FileCoverage, coverage_from_json, coverage_to_json
from .base import MergingStore

logger = get_logger(__name__)

_LOCK_POLL_SECONDS = 0.01


class FileStore(MergingStore):
    name = "file"

    def __init__(self, path: str, timeout: float = 10.0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.path = os.path.abspath(path)
        self.lock_path = self.path + ".lock"
        self.timeout = timeout

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise PersistenceError(self.name, f"cannot open lock: {e}", self.lock_path)

        try:
            deadline = time.monotonic() + self.timeout
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise StoreTimeoutError(
                            self.name, f"lock not acquired within {self.timeout}s", self.lock_path
                        )
                    time.sleep(_LOCK_POLL_SECONDS)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _load_document(self) -> Dict[str, Any]:
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise PersistenceError(self.name, f"cannot read: {e}", self.path)

        if not isinstance(raw, dict):
            raise PersistenceError(self.name, "document is not an object", self.path)
        if raw and not set(raw) <= set(BUCKETS):
            # Flat {path: record} documents hold runtime coverage
            return {"runtime": raw}
        return raw

    def _read(self, bucket: str) -> Dict[str, FileCoverage]:
        document = self._load_document()
        try:
            return coverage_from_json(document.get(bucket))
        except (TypeError, ValueError, AttributeError) as e:
            raise PersistenceError(self.name, f"malformed {bucket} coverage: {e}", self.path)

    def _write(self, bucket: str, coverage: Dict[str, FileCoverage], changed: List[str]) -> None:
        document = self._load_document()
        document[bucket] = coverage_to_json(coverage)
        self._replace(document)

    def _replace(self, document: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".coverwatch-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(self.name, f"cannot write: {e}", self.path)

    def clear(self) -> None:
        with self._locked():
            try:
                os.remove(self.path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise PersistenceError(self.name, f"cannot remove: {e}", self.path)
        logger.info("Cleared coverage file %s", self.path)

    def clear_file(self, path: str) -> None:
        with self._locked():
            document = self._load_document()
            changed = False
            for bucket in BUCKETS:
                records = document.get(bucket)
                if records and path in records:
                    del records[path]
                    changed = True
            if changed:
                self._replace(document)
