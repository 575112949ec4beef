from __future__ import annotations

import datetime as _dt
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, List, Optional

from ..internal_core.contracts import TranscriptionRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS transcriptions (
    id TEXT PRIMARY KEY,
    text TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    duration_ms INTEGER,
    confidence REAL,
    source TEXT,
    model TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_transcriptions_timestamp ON transcriptions(timestamp);

CREATE VIRTUAL TABLE IF NOT EXISTS transcriptions_fts
USING fts5(text, content='transcriptions', content_rowid='rowid');

CREATE TRIGGER IF NOT EXISTS transcriptions_ai AFTER INSERT ON transcriptions BEGIN
    INSERT INTO transcriptions_fts(rowid, text) VALUES (new.rowid, new.text);
END;

CREATE TRIGGER IF NOT EXISTS transcriptions_ad AFTER DELETE ON transcriptions BEGIN
    INSERT INTO transcriptions_fts(transcriptions_fts, rowid, text) VALUES ('delete', old.rowid, old.text);
END;

CREATE TRIGGER IF NOT EXISTS transcriptions_au AFTER UPDATE ON transcriptions BEGIN
    INSERT INTO transcriptions_fts(transcriptions_fts, rowid, text) VALUES ('delete', old.rowid, old.text);
    INSERT INTO transcriptions_fts(rowid, text) VALUES (new.rowid, new.text);
END;
"""

_FIELDS = ("id", "text", "timestamp", "duration_ms", "confidence", "source", "model", "metadata", "created_at")
_COLUMNS = ", ".join(_FIELDS)
_JOINED_COLUMNS = ", ".join(f"t.{name}" for name in _FIELDS)


def _to_utc_text(value: _dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    return value.astimezone(_dt.timezone.utc).isoformat(timespec="microseconds")


def _fts_pattern(query: str) -> str:
    return " ".join(f"{word}*" for word in query.split())


def _row_to_record(row: sqlite3.Row) -> TranscriptionRecord:
    metadata: Optional[dict[str, Any]] = None
    if row["metadata"]:
        try:
            metadata = json.loads(row["metadata"])
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable metadata on record %s", row["id"])
    return TranscriptionRecord(
        id=row["id"],
        text=row["text"],
        timestamp=_dt.datetime.fromisoformat(row["timestamp"]),
        duration_ms=row["duration_ms"],
        confidence=row["confidence"],
        source=row["source"],
        model=row["model"],
        metadata=metadata,
        created_at=_dt.datetime.fromisoformat(row["created_at"]),
    )


class HistoryStorage:
    """SQLite-backed transcription history, newest first.

    Write failures are logged and reported through the return value; read
    failures yield empty results.
    """

    def __init__(self, database_path: str | Path) -> None:
        self._path = Path(database_path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._ensure_schema()
        logger.info("History storage initialized at %s", self._path)

    @property
    def database_path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _ensure_schema(self) -> None:
        with self._lock:
            conn = self._connect()
            conn.executescript(_SCHEMA)
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def save(self, record: TranscriptionRecord) -> bool:
        payload = (
            record.id,
            record.text,
            _to_utc_text(record.timestamp),
            record.duration_ms,
            record.confidence,
            record.source,
            record.model,
            json.dumps(record.metadata) if record.metadata is not None else None,
            _to_utc_text(record.created_at),
        )
        try:
            with self._lock:
                conn = self._connect()
                with conn:
                    conn.execute(f"INSERT INTO transcriptions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)", payload)
        except sqlite3.Error as exc:
            logger.error("Failed to save record: %s", exc)
            return False
        logger.debug("Saved transcription record: %s", record.id)
        return True

    def delete(self, record_id: str) -> Optional[bool]:
        """Return True if removed, False if absent, None if the write failed."""
        try:
            with self._lock:
                conn = self._connect()
                with conn:
                    cur = conn.execute("DELETE FROM transcriptions WHERE id = ?", (record_id,))
        except sqlite3.Error as exc:
            logger.error("Failed to delete record: %s", exc)
            return None
        logger.debug("Deleted transcription record: %s", record_id)
        return cur.rowcount > 0

    def delete_all(self) -> bool:
        try:
            with self._lock:
                conn = self._connect()
                with conn:
                    conn.execute("DELETE FROM transcriptions")
        except sqlite3.Error as exc:
            logger.error("Failed to delete all records: %s", exc)
            return False
        logger.info("Deleted all transcription records")
        return True

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> List[TranscriptionRecord]:
        with self._lock:
            rows = self._connect().execute(sql, params).fetchall()
        return [_row_to_record(row) for row in rows]

    def fetch_all(self) -> List[TranscriptionRecord]:
        try:
            return self._query(f"SELECT {_COLUMNS} FROM transcriptions ORDER BY timestamp DESC")
        except sqlite3.Error as exc:
            logger.error("Failed to fetch records: %s", exc)
            return []

    def fetch_recent(self, limit: int = 5) -> List[TranscriptionRecord]:
        try:
            return self._query(
                f"SELECT {_COLUMNS} FROM transcriptions ORDER BY timestamp DESC LIMIT ?",
                (int(limit),),
            )
        except sqlite3.Error as exc:
            logger.error("Failed to fetch recent records: %s", exc)
            return []

    def search(self, query: str) -> List[TranscriptionRecord]:
        if not query.strip():
            return self.fetch_all()

        sql = (
            f"SELECT {_JOINED_COLUMNS} "
            "FROM transcriptions t JOIN transcriptions_fts f ON f.rowid = t.rowid "
            "WHERE transcriptions_fts MATCH ? ORDER BY t.timestamp DESC"
        )
        try:
            return self._query(sql, (_fts_pattern(query),))
        except sqlite3.Error as exc:
            logger.error("Search failed, falling back to substring match: %s", exc)
            needle = query.casefold()
            return [r for r in self.fetch_all() if needle in r.text.casefold()]

    def get_record(self, record_id: str) -> Optional[TranscriptionRecord]:
        try:
            records = self._query(f"SELECT {_COLUMNS} FROM transcriptions WHERE id = ?", (record_id,))
        except sqlite3.Error as exc:
            logger.error("Failed to fetch record: %s", exc)
            return None
        return records[0] if records else None
