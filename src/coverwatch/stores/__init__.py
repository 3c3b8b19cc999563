"""Coverage stores and the factory that builds one from configuration."""

from ..config import CoverageConfig
from ..exceptions import ConfigurationError
from ..hashing import FileHasher
from .base import CoverageStore, MergingStore
from .file import FileStore
from .http import HttpStore
from .memory import MemoryStore
from .sqlite import SQLiteStore

__all__ = [
    "CoverageStore",
    "MergingStore",
    "MemoryStore",
    "FileStore",
    "SQLiteStore",
    "HttpStore",
    "build_store",
]


def build_store(config: CoverageConfig) -> CoverageStore:
    """Instantiate the store named by ``config.store_type``."""
    hasher = FileHasher(root=config.project_root)
    if config.store_type == "memory":
        return MemoryStore(hasher=hasher)
    if config.store_type == "file":
        return FileStore(config.resolved_store_path, timeout=config.store_timeout, hasher=hasher)
    if config.store_type == "sqlite":
        return SQLiteStore(config.resolved_store_path, timeout=config.store_timeout, hasher=hasher)
    if config.store_type == "http":
        if not config.http_save_url:
            raise ConfigurationError("http store requires http_save_url")
        return HttpStore(
            save_url=config.http_save_url,
            get_url=config.http_get_url,
            save_method=config.http_save_method,
            get_method=config.http_get_method,
            save_timeout=config.http_save_timeout,
            get_timeout=config.http_get_timeout,
        )
    raise ConfigurationError(f"Unknown store type: {config.store_type}")
