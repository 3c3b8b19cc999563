"""Decide which files belong to the tracked project and which report group they fall in.

Called once per file per flush, so patterns are compiled when the classifier
is built and each call is a handful of C-level string operations.
"""

from __future__ import annotations

import os
import re
from typing import Iterable, Mapping, Optional, Pattern

from .config import CoverageConfig
from .models import Classification


def _prefix(path: str) -> str:
    """Absolute directory prefix ending in a separator."""
    return os.path.join(os.path.abspath(os.path.expanduser(path)), "")


class FileClassifier:
    """Pure function of its configuration.

    A path is ignored if it contains any ignore pattern as a substring; ignore
    always wins. Otherwise it is tracked when it lies under the project root
    or one of ``root_paths``, or under a third-party root when third-party
    tracking is enabled.

    Stored coverage is keyed relative to whichever project root or root path
    a file lives under, so the same file deployed to different directories
    lands on one record. Third-party files keep their absolute path.
    """

    def __init__(
        self,
        root: str,
        ignore: Iterable[str] = (),
        track_third_party: bool = False,
        third_party_paths: Iterable[str] = (),
        groups: Optional[Mapping[str, str]] = None,
        root_paths: Iterable[str] = (),
    ) -> None:
        self.root = _prefix(root)
        self.track_third_party = track_third_party

        patterns = [p for p in ignore if p]
        self._ignore: Optional[Pattern[str]] = (
            re.compile("|".join(re.escape(p) for p in patterns)) if patterns else None
        )

        # (prefix, keyed relative?) longest first, so nested roots match innermost
        anchors = [(_prefix(p), True) for p in root_paths if p]
        anchors.append((self.root, True))
        if track_third_party:
            anchors.extend((_prefix(p), False) for p in third_party_paths)
        anchors.sort(key=lambda anchor: len(anchor[0]), reverse=True)
        self._anchors = anchors
        self._roots = tuple(prefix for prefix, _ in anchors)

        self._groups: list[tuple[str, Pattern[str]]] = [
            (name, re.compile(pattern)) for name, pattern in (groups or {}).items() if pattern
        ]

    @classmethod
    def from_config(cls, config: CoverageConfig) -> "FileClassifier":
        return cls(
            root=config.project_root,
            ignore=config.effective_ignore,
            track_third_party=config.track_third_party,
            third_party_paths=config.third_party_paths,
            groups=config.effective_groups,
            root_paths=config.root_paths,
        )

    def is_ignored(self, path: str) -> bool:
        return self._ignore is not None and self._ignore.search(path) is not None

    def is_tracked(self, path: str) -> bool:
        if self._ignore is not None and self._ignore.search(path) is not None:
            return False
        return path.startswith(self._roots)

    def classify(self, path: str) -> Classification:
        if self.is_tracked(path):
            return Classification.TRACKED
        return Classification.IGNORED

    def relative_key(self, path: str) -> str:
        """Store key for an absolute path."""
        for prefix, relative in self._anchors:
            if path.startswith(prefix):
                return path[len(prefix):] if relative else path
        return path

    def absolute_path(self, key: str) -> str:
        """Where a store key lives in the current checkout."""
        if os.path.isabs(key):
            return key
        return os.path.join(self.root, key)

    def group(self, path: str) -> Optional[str]:
        """First matching group name, in configuration order."""
        for name, pattern in self._groups:
            if pattern.search(path):
                return name
        return None

    def group_files(self, keys: Iterable[str]) -> dict[str, list[str]]:
        """Partition tracked store keys by group. Ungrouped files are keyed by the empty string."""
        grouped: dict[str, list[str]] = {}
        for key in keys:
            path = self.absolute_path(key)
            if not self.is_tracked(path):
                continue
            grouped.setdefault(self.group(path) or "", []).append(key)
        return grouped
