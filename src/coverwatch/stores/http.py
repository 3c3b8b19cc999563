"""Remote store: ships deltas to an HTTP collector service that merges them.

The service owns the merge, so this store declares ``MergeMode.ADD`` and
sends each batch as-is. Clearing is not part of the remote contract.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

import requests

from ..exceptions import PersistenceError, StoreTimeoutError, UnsupportedOperationError
from ..logging_config import get_logger
from ..models import FileCoverage, LineCoverage, MergeMode, TrackingPhase, coverage_from_json
from .base import CoverageStore

logger = get_logger(__name__)


class HttpStore(CoverageStore):
    name = "http"
    merge_mode = MergeMode.ADD

    def __init__(
        self,
        save_url: Optional[str],
        get_url: Optional[str] = None,
        save_method: str = "POST",
        get_method: str = "GET",
        save_timeout: float = 10.0,
        get_timeout: float = 10.0,
        metadata_provider: Optional[Callable[[], Dict[str, Any]]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.save_url = save_url
        self.get_url = get_url
        self.save_method = save_method.upper()
        self.get_method = get_method.upper()
        self.save_timeout = save_timeout
        self.get_timeout = get_timeout
        self.metadata_provider = metadata_provider
        self.session = session or requests.Session()

    def save_report(
        self, report: Mapping[str, LineCoverage], phase: TrackingPhase = TrackingPhase.UNSET
    ) -> None:
        if not self.save_url:
            raise PersistenceError(self.name, "no save URL configured")

        metadata: Dict[str, Any] = {}
        if self.metadata_provider is not None:
            metadata = dict(self.metadata_provider())
        metadata.setdefault("phase", phase.value)

        payload = {"coverage_report": dict(report), "metadata": metadata}
        self._request(self.save_method, self.save_url, self.save_timeout, json=payload)
        logger.debug("Posted %d files to %s", len(report), self.save_url)

    def get_coverage_report(self) -> Dict[str, FileCoverage]:
        if not self.get_url:
            raise PersistenceError(self.name, "no get URL configured")

        response = self._request(
            self.get_method,
            self.get_url,
            self.get_timeout,
            headers={"Accept": "application/json"},
        )
        try:
            return coverage_from_json(response.json())
        except (ValueError, TypeError, AttributeError) as e:
            raise PersistenceError(self.name, f"malformed response: {e}", self.get_url)

    def _request(self, method: str, url: str, timeout: float, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()
        except requests.Timeout as e:
            raise StoreTimeoutError(self.name, f"timed out after {timeout}s: {e}", url)
        except requests.RequestException as e:
            raise PersistenceError(self.name, str(e), url)
        return response

    def clear(self) -> None:
        raise UnsupportedOperationError(type(self).__name__, "clear")

    def clear_file(self, path: str) -> None:
        raise UnsupportedOperationError(type(self).__name__, "clear_file")

    def close(self) -> None:
        self.session.close()
