"""Durable storage for the Kept and Sensitive identifier sets and scan flags.

Everything lives in one SQLite database. Reads are served from an
in-memory mirror that is loaded once at open and updated before each
write is attempted, so visibility never waits on the disk. A write that
fails is remembered and retried on the next write (or an explicit
``sync()``); ``pending_writes()`` reports whatever is still unsaved.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "triage.db"

SCAN_COMPLETED = "sensitivity_scan_completed"
SCAN_STARTED = "sensitivity_scan_started"
SCAN_VERSION = "sensitivity_scan_version"


class StoreError(Exception):
    """A durable write or read against the set store failed."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS kept_assets (
            id TEXT PRIMARY KEY,
            kept_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS sensitive_assets (
            id TEXT PRIMARY KEY,
            probability REAL,
            flagged_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS flags (
            key TEXT PRIMARY KEY,
            value INTEGER NOT NULL
        );
        """
    )
    conn.commit()


class DerivedSetStore:
    """Kept set, Sensitive set and scan-state flags, surviving restart."""

    def __init__(self, db_path: Path | str):
        """
        Open (or create) the store.

        Args:
            db_path: SQLite file, or ":memory:" for a throwaway store
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        try:
            self._conn = _connect(self.db_path)
            _ensure_schema(self._conn)
            self._kept: Set[str] = {
                row["id"] for row in self._conn.execute("SELECT id FROM kept_assets")
            }
            self._sensitive: Set[str] = {
                row["id"] for row in self._conn.execute("SELECT id FROM sensitive_assets")
            }
            self._flags = {
                row["key"]: int(row["value"])
                for row in self._conn.execute("SELECT key, value FROM flags")
            }
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open set store {self.db_path}: {e}") from e

        # (description, operation) pairs still waiting to reach disk
        self._pending: List[Tuple[str, Callable[[sqlite3.Connection], None]]] = []

        logger.info(
            f"Opened set store {self.db_path} "
            f"(kept: {len(self._kept)}, sensitive: {len(self._sensitive)})"
        )

    # -- write path -----------------------------------------------------

    def _write(self, description: str, operation: Callable[[sqlite3.Connection], None]) -> bool:
        """Run queued retries then this operation; returns True if everything landed."""
        with self._lock:
            self._pending.append((description, operation))
            return self._drain()

    def _drain(self) -> bool:
        while self._pending:
            description, operation = self._pending[0]
            try:
                with self._conn:
                    operation(self._conn)
            except sqlite3.Error as e:
                logger.error(
                    f"Persisting {description} failed ({len(self._pending)} pending): {e}"
                )
                return False
            self._pending.pop(0)
        return True

    def sync(self) -> bool:
        """Retry writes that previously failed."""
        with self._lock:
            return self._drain()

    def pending_writes(self) -> List[str]:
        with self._lock:
            return [description for description, _ in self._pending]

    # -- kept -----------------------------------------------------------

    def add_kept(self, identifier: str) -> bool:
        """Idempotent insert. Returns whether the write reached disk."""
        with self._lock:
            if identifier in self._kept:
                return self.sync()
            self._kept.add(identifier)
            now = _utc_now()
            return self._write(
                f"kept {identifier}",
                lambda conn: conn.execute(
                    "INSERT OR IGNORE INTO kept_assets (id, kept_at) VALUES (?, ?)",
                    (identifier, now),
                ),
            )

    def is_kept(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._kept

    def kept_ids(self) -> Set[str]:
        with self._lock:
            return set(self._kept)

    def kept_count(self) -> int:
        with self._lock:
            return len(self._kept)

    # -- sensitive ------------------------------------------------------

    def add_sensitive(self, identifier: str, probability: Optional[float] = None) -> bool:
        with self._lock:
            self._sensitive.add(identifier)
            now = _utc_now()
            return self._write(
                f"sensitive {identifier}",
                lambda conn: conn.execute(
                    "INSERT OR IGNORE INTO sensitive_assets (id, probability, flagged_at) "
                    "VALUES (?, ?, ?)",
                    (identifier, probability, now),
                ),
            )

    def remove_sensitive(self, identifiers: Iterable[str]) -> bool:
        with self._lock:
            doomed = [i for i in identifiers if i in self._sensitive]
            if not doomed:
                return self.sync()
            self._sensitive.difference_update(doomed)
            return self._write(
                f"unflag {len(doomed)} assets",
                lambda conn: conn.executemany(
                    "DELETE FROM sensitive_assets WHERE id = ?",
                    [(i,) for i in doomed],
                ),
            )

    def clear_sensitive(self) -> bool:
        with self._lock:
            self._sensitive.clear()
            return self._write(
                "clear sensitive set",
                lambda conn: conn.execute("DELETE FROM sensitive_assets"),
            )

    def is_sensitive(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._sensitive

    def sensitive_ids(self) -> Set[str]:
        with self._lock:
            return set(self._sensitive)

    def sensitive_count(self) -> int:
        with self._lock:
            return len(self._sensitive)

    # -- scalar flags ---------------------------------------------------

    def get_int(self, key: str, default: int = 0) -> int:
        with self._lock:
            return self._flags.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        return bool(self.get_int(key, int(default)))

    def set_int(self, key: str, value: int) -> bool:
        with self._lock:
            self._flags[key] = int(value)
            return self._write(
                f"flag {key}={value}",
                lambda conn: conn.execute(
                    "INSERT INTO flags (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, int(value)),
                ),
            )

    def set_bool(self, key: str, value: bool) -> bool:
        return self.set_int(key, int(bool(value)))

    def close(self) -> None:
        with self._lock:
            if self._pending:
                logger.warning(f"Closing set store with {len(self._pending)} unsaved writes")
            self._conn.close()
