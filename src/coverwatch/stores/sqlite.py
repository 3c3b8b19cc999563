"""SQLite-backed coverage store, by default at ``.coverwatch/coverage.db``.

Each flush runs its read-merge-write inside ``BEGIN IMMEDIATE``, which takes
the database write lock up front, so concurrent processes serialize instead
of overwriting each other's counts.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from ..exceptions import PersistenceError, StoreTimeoutError
from ..logging_config import get_logger
from ..models import FileCoverage
from .base import MergingStore

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 1


class SQLiteStore(MergingStore):
    """Coverage rows keyed by (phase bucket, path).

    Usage::

        with SQLiteStore("/path/to/project/.coverwatch/coverage.db") as store:
            store.save_report({"/app/a.py": [None, 1, 2]})
    """

    name = "sqlite"

    def __init__(self, db_path: str, timeout: float = 10.0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.db_path: Path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()

    # ── lifecycle ─────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        """Create the store directory and keep it out of version control."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        gitignore = self.db_path.parent / ".gitignore"
        if self.db_path.parent.name == ".coverwatch" and not gitignore.exists():
            gitignore.write_text("*\n")

    @property
    def conn(self) -> sqlite3.Connection:
        """Per-thread connection, opened on first use."""
        conn: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if conn is None:
            try:
                self._ensure_dir()
                conn = sqlite3.connect(
                    str(self.db_path), timeout=self.timeout, isolation_level=None
                )
                conn.execute("PRAGMA journal_mode=WAL")
                conn.row_factory = sqlite3.Row
                self._migrate(conn)
            except (OSError, sqlite3.Error) as e:
                raise PersistenceError(self.name, f"cannot open database: {e}", str(self.db_path))
            self._local.conn = conn
            logger.debug("Coverage DB connected at %s", self.db_path)
        return conn

    def close(self) -> None:
        """Close this thread's connection if open."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── migration ─────────────────────────────────────────────────

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Idempotently create all tables."""
        conn.execute("BEGIN IMMEDIATE")
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER NOT NULL
                )
                """
            )
            row = conn.execute("SELECT version FROM schema_version").fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (_SCHEMA_VERSION,),
                )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS coverage (
                    phase            TEXT    NOT NULL,
                    path             TEXT    NOT NULL,
                    data             TEXT    NOT NULL,
                    file_hash        TEXT,
                    first_updated_at INTEGER NOT NULL,
                    last_updated_at  INTEGER NOT NULL,
                    PRIMARY KEY (phase, path)
                )
                """
            )
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise

    # ── store hooks ───────────────────────────────────────────────

    @contextmanager
    def _locked(self) -> Iterator[None]:
        conn = self.conn
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                raise StoreTimeoutError(self.name, str(e), str(self.db_path))
            raise PersistenceError(self.name, str(e), str(self.db_path))
        try:
            yield
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise PersistenceError(self.name, f"commit failed: {e}", str(self.db_path))

    def _read(self, bucket: str) -> Dict[str, FileCoverage]:
        try:
            rows = self.conn.execute(
                """
                SELECT path, data, file_hash, first_updated_at, last_updated_at
                FROM coverage WHERE phase = ?
                """,
                (bucket,),
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(self.name, f"read failed: {e}", str(self.db_path))

        try:
            return {
                row["path"]: FileCoverage(
                    data=json.loads(row["data"]),
                    file_hash=row["file_hash"],
                    first_updated_at=row["first_updated_at"],
                    last_updated_at=row["last_updated_at"],
                )
                for row in rows
            }
        except ValueError as e:
            raise PersistenceError(self.name, f"malformed row: {e}", str(self.db_path))

    def _write(self, bucket: str, coverage: Dict[str, FileCoverage], changed: List[str]) -> None:
        # Rows are keyed by path, so only changed records need an upsert
        rows = [
            (
                bucket,
                path,
                json.dumps(coverage[path].data),
                coverage[path].file_hash,
                coverage[path].first_updated_at,
                coverage[path].last_updated_at,
            )
            for path in changed
        ]
        try:
            self.conn.executemany(
                """
                INSERT INTO coverage
                    (phase, path, data, file_hash, first_updated_at, last_updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(phase, path) DO UPDATE SET
                    data = excluded.data,
                    file_hash = excluded.file_hash,
                    first_updated_at = excluded.first_updated_at,
                    last_updated_at = excluded.last_updated_at
                """,
                rows,
            )
        except sqlite3.Error as e:
            raise PersistenceError(self.name, f"write failed: {e}", str(self.db_path))

    def clear(self) -> None:
        with self._locked():
            self.conn.execute("DELETE FROM coverage")
        logger.info("Cleared coverage database %s", self.db_path)

    def clear_file(self, path: str) -> None:
        with self._locked():
            self.conn.execute("DELETE FROM coverage WHERE path = ?", (path,))
