"""
Persistence gateway for the record set.

The pipeline only needs load/save of one snapshot. Backends are swappable
(JSON file, process memory for serverless hosts, SQLite); the gateway adds
the debounce window and turns backend failures into outcomes instead of
exceptions. Every backend replaces the snapshot atomically so a crash never
leaves a truncated history behind.
"""

from __future__ import annotations

import json
import os
import sqlite3
import tempfile
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator

from sol_tracker.core.exceptions import PersistenceError
from sol_tracker.database.models import StoredSnapshot
from sol_tracker.tracker_logging import get_logger

logger = get_logger(__name__)

DEFAULT_SAVE_DEBOUNCE_SEC = 5.0
DEFAULT_SNAPSHOT_KEY = "transactions"


class SaveOutcome(str, Enum):
    COMMITTED = "committed"
    SKIPPED = "skipped"
    FAILED = "failed"


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class StorageBackend(ABC):
    """Reads and writes one serialized snapshot (a JSON object) atomically."""

    @abstractmethod
    def read(self) -> dict[str, Any] | None:
        """Return the stored object, or None if nothing was ever written."""
        ...

    @abstractmethod
    def write(self, payload: dict[str, Any]) -> None:
        """Replace the stored object. Raise PersistenceError on failure."""
        ...

    @abstractmethod
    def delete(self) -> None:
        ...


class JsonFileBackend(StorageBackend):
    """Single JSON file; writes go to a temp file in the same directory and are renamed over."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"cannot read {self._path}: {e}") from e

    def write(self, payload: dict[str, Any]) -> None:
        tmp_name: str | None = None
        try:
            data = json.dumps(payload, indent=2)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"cannot write {self._path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def delete(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"cannot delete {self._path}: {e}") from e


class MemoryBackend(StorageBackend):
    """
    Process-local storage for serverless hosts without a writable disk.

    Stores the serialized JSON text, so what comes back is a fresh copy and
    serialization errors surface at write time like the file backend.
    """

    def __init__(self) -> None:
        self._data: str | None = None

    def read(self) -> dict[str, Any] | None:
        if self._data is None:
            return None
        try:
            return json.loads(self._data)
        except ValueError as e:
            raise PersistenceError(f"corrupt in-memory snapshot: {e}") from e

    def write(self, payload: dict[str, Any]) -> None:
        try:
            self._data = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"cannot serialize snapshot: {e}") from e

    def delete(self) -> None:
        self._data = None


SCHEMA_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS snapshots (
    key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


class SQLiteBackend(StorageBackend):
    """SQLite file with one row per snapshot key; each write is one transaction."""

    def __init__(
        self,
        path: str | Path,
        *,
        key: str = DEFAULT_SNAPSHOT_KEY,
        timeout_sec: float = 5.0,
    ) -> None:
        self._path = Path(path)
        self._key = key
        self._timeout_sec = timeout_sec

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA_SNAPSHOTS)
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open {self._path}: {e}") from e
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"sqlite error on {self._path}: {e}") from e
        finally:
            conn.close()

    def read(self) -> dict[str, Any] | None:
        with self._cursor() as cur:
            cur.execute("SELECT payload FROM snapshots WHERE key = ?", (self._key,))
            row = cur.fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise PersistenceError(f"corrupt snapshot row {self._key!r}: {e}") from e

    def write(self, payload: dict[str, Any]) -> None:
        try:
            data = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"cannot serialize snapshot: {e}") from e
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO snapshots (key, payload, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (self._key, data, int(time.time())),
            )

    def delete(self) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM snapshots WHERE key = ?", (self._key,))


# -----------------------------------------------------------------------------
# Gateway
# -----------------------------------------------------------------------------


class PersistenceGateway:
    """
    load/save contract used by the orchestrator.

    load() never raises: a missing or unreadable store is None so ingestion
    starts from empty. save() writes at most once per debounce window unless
    forced, and reports failures as SaveOutcome.FAILED.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        min_save_interval_sec: float = DEFAULT_SAVE_DEBOUNCE_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_save_interval_sec < 0:
            raise ValueError("min_save_interval_sec must be >= 0")
        self._backend = backend
        self._min_interval = min_save_interval_sec
        self._clock = clock
        self._last_commit_at: float | None = None

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def last_commit_at(self) -> float | None:
        return self._last_commit_at

    def load(self) -> StoredSnapshot | None:
        try:
            payload = self._backend.read()
        except PersistenceError as e:
            logger.warning("storage_load_failed", error=str(e))
            return None
        if payload is None:
            logger.info("storage_load_not_found")
            return None
        try:
            snapshot = StoredSnapshot.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("storage_load_corrupt", error=str(e))
            return None
        logger.info(
            "storage_loaded",
            record_count=len(snapshot.records),
            last_fetch_timestamp=snapshot.last_fetch_timestamp,
        )
        return snapshot

    def in_debounce_window(self) -> bool:
        if self._last_commit_at is None:
            return False
        return self._clock() - self._last_commit_at < self._min_interval

    def save(self, snapshot: StoredSnapshot, *, force: bool = False) -> SaveOutcome:
        if not force and self.in_debounce_window():
            logger.debug("storage_save_skipped", reason="debounce")
            return SaveOutcome.SKIPPED
        try:
            self._backend.write(snapshot.to_dict())
        except PersistenceError as e:
            logger.error("storage_save_failed", error=str(e))
            return SaveOutcome.FAILED
        self._last_commit_at = self._clock()
        logger.info("storage_saved", record_count=len(snapshot.records), forced=force)
        return SaveOutcome.COMMITTED

    def clear(self) -> bool:
        try:
            self._backend.delete()
        except PersistenceError as e:
            logger.error("storage_clear_failed", error=str(e))
            return False
        self._last_commit_at = None
        return True


def build_backend(kind: str, path: str | Path | None = None) -> StorageBackend:
    """Return a backend for `file`, `memory` or `sqlite`."""
    kind = (kind or "file").strip().lower()
    if kind == "memory":
        return MemoryBackend()
    if kind == "file":
        return JsonFileBackend(path or Path("data") / "transactions.json")
    if kind == "sqlite":
        return SQLiteBackend(path or Path("data") / "tracker.db")
    raise ValueError(f"unknown storage backend: {kind!r}")
