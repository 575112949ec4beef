from __future__ import annotations

import datetime as _dt
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from ..internal_core.contracts import DictionaryTerm

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS dictionary_terms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    term TEXT NOT NULL,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_dictionary_term ON dictionary_terms(term);
"""

_COLUMNS = "id, term, is_enabled, created_at, updated_at"


def _utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def _row_to_term(row: sqlite3.Row) -> DictionaryTerm:
    return DictionaryTerm(
        id=row["id"],
        term=row["term"],
        is_enabled=bool(row["is_enabled"]),
        created_at=_dt.datetime.fromisoformat(row["created_at"]),
        updated_at=_dt.datetime.fromisoformat(row["updated_at"]),
    )


class DictionaryStorageProtocol(ABC):
    @property
    @abstractmethod
    def terms(self) -> List[DictionaryTerm]: ...

    @abstractmethod
    def save(self, term: DictionaryTerm) -> DictionaryTerm: ...

    @abstractmethod
    def update(self, term: DictionaryTerm) -> DictionaryTerm: ...

    @abstractmethod
    def delete(self, term: DictionaryTerm) -> None: ...

    @abstractmethod
    def fetch_all(self) -> List[DictionaryTerm]: ...

    @abstractmethod
    def fetch_enabled(self) -> List[DictionaryTerm]: ...

    @abstractmethod
    def term_exists(self, term_text: str) -> bool: ...

    @abstractmethod
    def count(self) -> int: ...


class DictionaryStorage(DictionaryStorageProtocol):
    """Dictionary terms in SQLite, newest first.

    ``term`` is unique and compared case-sensitively. Writes raise
    ``sqlite3.Error``; reads log and return empty results.
    """

    def __init__(self, database_path: str | Path) -> None:
        self._path = Path(database_path)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._terms: List[DictionaryTerm] = []
        self._ensure_schema()
        self._reload()

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
        logger.debug("Dictionary database schema initialized")

    def _reload(self) -> None:
        terms = self.fetch_all()
        with self._lock:
            self._terms = terms
        logger.debug("Dictionary: loaded %d terms", len(terms))

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def terms(self) -> List[DictionaryTerm]:
        with self._lock:
            return list(self._terms)

    def save(self, term: DictionaryTerm) -> DictionaryTerm:
        now = _utc_now()
        with self._lock:
            conn = self._connect()
            try:
                cur = conn.execute(
                    "INSERT INTO dictionary_terms (term, is_enabled, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (term.term, int(term.is_enabled), now.isoformat(timespec="microseconds"), now.isoformat(timespec="microseconds")),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.error("Failed to save term: %s", exc)
                raise
        saved = term.model_copy(update={"id": cur.lastrowid, "created_at": now, "updated_at": now})
        self._reload()
        logger.info("Dictionary: added term '%s'", term.term)
        return saved

    def update(self, term: DictionaryTerm) -> DictionaryTerm:
        if term.id is None:
            raise ValueError("cannot update a term that was never saved")
        now = _utc_now()
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    "UPDATE dictionary_terms SET term = ?, is_enabled = ?, updated_at = ? WHERE id = ?",
                    (term.term, int(term.is_enabled), now.isoformat(timespec="microseconds"), term.id),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.error("Failed to update term: %s", exc)
                raise
        self._reload()
        logger.info("Dictionary: updated term '%s'", term.term)
        return term.model_copy(update={"updated_at": now})

    def delete(self, term: DictionaryTerm) -> None:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM dictionary_terms WHERE id = ?", (term.id,))
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.error("Failed to delete term: %s", exc)
                raise
        self._reload()
        logger.info("Dictionary: removed term '%s'", term.term)

    def _select(self, where: str = "", params: tuple = ()) -> List[DictionaryTerm]:
        sql = f"SELECT {_COLUMNS} FROM dictionary_terms {where} ORDER BY created_at DESC, id DESC"
        with self._lock:
            rows = self._connect().execute(sql, params).fetchall()
        return [_row_to_term(row) for row in rows]

    def fetch_all(self) -> List[DictionaryTerm]:
        try:
            return self._select()
        except sqlite3.Error as exc:
            logger.error("Failed to fetch terms: %s", exc)
            return []

    def fetch_enabled(self) -> List[DictionaryTerm]:
        try:
            return self._select("WHERE is_enabled = 1")
        except sqlite3.Error as exc:
            logger.error("Failed to fetch enabled terms: %s", exc)
            return []

    def term_exists(self, term_text: str) -> bool:
        try:
            with self._lock:
                row = self._connect().execute(
                    "SELECT COUNT(*) FROM dictionary_terms WHERE term = ?", (term_text,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to check term existence: %s", exc)
            return False
        return bool(row[0])

    def count(self) -> int:
        try:
            with self._lock:
                row = self._connect().execute("SELECT COUNT(*) FROM dictionary_terms").fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to count terms: %s", exc)
            return 0
        return int(row[0])
