"""SQLite-backed translation cache shared by every pipeline worker."""
from __future__ import annotations

import os
import sqlite3
import threading
import time
from datetime import timedelta
from typing import Callable, Optional, Union

from domain.errors import CacheError
from engine.log import get_logger

logger = get_logger("cache")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS translations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_text TEXT NOT NULL,
    translated_text TEXT NOT NULL,
    source_language TEXT NOT NULL,
    target_language TEXT NOT NULL,
    timestamp REAL NOT NULL,
    UNIQUE(source_text, source_language, target_language)
);
CREATE INDEX IF NOT EXISTS idx_translations_timestamp ON translations(timestamp);
"""

_UPSERT = """
INSERT INTO translations
    (source_text, translated_text, source_language, target_language, timestamp)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(source_text, source_language, target_language) DO UPDATE SET
    translated_text = excluded.translated_text,
    timestamp = excluded.timestamp
"""

_EXISTS = """
SELECT 1 FROM translations
WHERE source_text = ? AND source_language = ? AND target_language = ?
"""

_EVICT_CHUNK = """
DELETE FROM translations WHERE id IN (
    SELECT id FROM translations WHERE timestamp <= ? LIMIT ?
)
"""

EVICT_CHUNK_SIZE = 500


def normalize_source_text(text: str) -> str:
    return " ".join(text.split())


def _seconds(max_age: Union[timedelta, float, int]) -> float:
    if isinstance(max_age, timedelta):
        return max_age.total_seconds()
    return float(max_age)


class TranslationCache:
    """Persistent (text, source, target) -> translation store.

    One connection is shared by all threads and every statement runs under a
    lock, so writes for the same key are serialised and the UNIQUE constraint
    turns them into an atomic upsert (last write wins).
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._db_path = db_path
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

        try:
            if db_path != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
            self._conn = sqlite3.connect(db_path, check_same_thread=False, timeout=30.0)
            if db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
            (self._count,) = self._conn.execute("SELECT COUNT(*) FROM translations").fetchone()
        except (OSError, sqlite3.Error) as exc:
            raise CacheError(f"Cannot open translation cache at {db_path}: {exc}") from exc

    @property
    def db_path(self) -> str:
        return self._db_path

    def get(self, text: str, source_language: str, target_language: str) -> Optional[str]:
        key = normalize_source_text(text)
        if not key:
            return None
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT translated_text FROM translations "
                    "WHERE source_text = ? AND source_language = ? AND target_language = ?",
                    (key, source_language, target_language),
                ).fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"Failed to read cached translation: {exc}") from exc
        return row[0] if row else None

    def put(
        self,
        text: str,
        translated_text: str,
        source_language: str,
        target_language: str,
    ) -> None:
        key = normalize_source_text(text)
        if not key:
            return
        try:
            with self._lock:
                with self._conn:
                    exists = self._conn.execute(
                        _EXISTS, (key, source_language, target_language)
                    ).fetchone()
                    self._conn.execute(
                        _UPSERT,
                        (key, translated_text, source_language, target_language, self._clock()),
                    )
                    if exists is None:
                        self._count += 1
                    if self._max_entries is not None:
                        self._trim_locked(self._max_entries)
        except sqlite3.Error as exc:
            raise CacheError(f"Failed to cache translation: {exc}") from exc

    def _trim_locked(self, max_entries: int) -> None:
        # _count is this connection's running total; other writers to the
        # same file are picked up the next time the cache is opened
        excess = self._count - max_entries
        if excess > 0:
            cur = self._conn.execute(
                "DELETE FROM translations WHERE id IN ("
                "SELECT id FROM translations ORDER BY timestamp ASC, id ASC LIMIT ?)",
                (excess,),
            )
            self._count -= cur.rowcount
            logger.debug(f"Trimmed {excess} oldest cache entr{'y' if excess == 1 else 'ies'}")

    def evict_older_than(
        self,
        max_age: Union[timedelta, float, int],
        chunk_size: int = EVICT_CHUNK_SIZE,
    ) -> int:
        """Delete entries last written at least ``max_age`` ago. Returns the count.

        Rows go in chunks of ``chunk_size``, each in its own transaction, and
        the lock is released between chunks so lookups from the workers are
        not held up behind a large sweep.
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        cutoff = self._clock() - _seconds(max_age)
        removed = 0
        while True:
            try:
                with self._lock:
                    with self._conn:
                        cur = self._conn.execute(_EVICT_CHUNK, (cutoff, chunk_size))
                    self._count -= cur.rowcount
            except sqlite3.Error as exc:
                raise CacheError(f"Failed to evict cache entries: {exc}") from exc
            removed += cur.rowcount
            if cur.rowcount < chunk_size:
                return removed

    def __len__(self) -> int:
        with self._lock:
            (count,) = self._conn.execute("SELECT COUNT(*) FROM translations").fetchone()
        return count

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> TranslationCache:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
