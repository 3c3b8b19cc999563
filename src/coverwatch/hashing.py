"""Content hashes that tie stored coverage to one version of a file."""

import hashlib
import os
import threading
from typing import Dict, Iterable, Optional, Tuple

from .logging_config import get_logger

logger = get_logger(__name__)


class FileHasher:
    """MD5 of file contents, cached on (path, mtime, size).

    Thread-safe; stat is cheap next to re-reading every file on every flush.
    Relative store keys are resolved against ``root``.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = os.path.abspath(root) if root else None
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[int, int, str]] = {}

    def resolve(self, key: str) -> str:
        if self.root is None or os.path.isabs(key):
            return key
        return os.path.join(self.root, key)

    def hash(self, key: str) -> Optional[str]:
        path = self.resolve(key)
        try:
            stat = os.stat(path)
        except OSError:
            return None

        with self._lock:
            cached = self._cache.get(path)
        if cached is not None and cached[0] == stat.st_mtime_ns and cached[1] == stat.st_size:
            return cached[2]

        digest = hashlib.md5(usedforsecurity=False)
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    digest.update(chunk)
        except OSError as e:
            logger.debug("Could not hash %s: %s", path, e)
            return None

        value = digest.hexdigest()
        with self._lock:
            self._cache[path] = (stat.st_mtime_ns, stat.st_size, value)
        return value

    def hash_all(self, paths: Iterable[str]) -> Dict[str, Optional[str]]:
        return {path: self.hash(path) for path in paths}

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
