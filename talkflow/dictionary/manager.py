from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from ..internal_core.contracts import DictionaryTerm
from .storage import DictionaryStorageProtocol

logger = logging.getLogger(__name__)

MAX_TERMS = 50

_ERROR_DESCRIPTIONS = {
    "EMPTY_TERM": "Term cannot be empty",
    "DUPLICATE_TERM": "This term already exists",
    "LIMIT_REACHED": f"Dictionary limit reached ({MAX_TERMS} terms). Delete some terms to add new ones.",
    "STORAGE_ERROR": "Storage error: {detail}",
}


class DictionaryError(ValueError):
    def __init__(self, code: str, detail: str = ""):
        template = _ERROR_DESCRIPTIONS.get(code, "{detail}")
        message = template.format(detail=detail) if "{detail}" in template else template
        super().__init__(message)
        self.code = code
        self.detail = detail
        self.message = message


class DictionaryManager:
    """Validation and prompt building on top of a dictionary store."""

    max_terms = MAX_TERMS

    def __init__(self, storage: DictionaryStorageProtocol):
        self._storage = storage
        self._terms: List[DictionaryTerm] = []
        self._enabled_terms: List[str] = []
        self.refresh_terms()

    @property
    def terms(self) -> List[DictionaryTerm]:
        return list(self._terms)

    @property
    def enabled_terms(self) -> List[str]:
        return list(self._enabled_terms)

    @property
    def is_at_limit(self) -> bool:
        return len(self._terms) >= self.max_terms

    @property
    def term_count(self) -> int:
        return len(self._terms)

    def refresh_terms(self) -> None:
        self._terms = self._storage.terms
        self._enabled_terms = [t.term for t in self._terms if t.is_enabled]
        logger.debug("Dictionary: %d enabled terms available for prompt", len(self._enabled_terms))

    def add_term(self, term_text: str) -> DictionaryTerm:
        trimmed = term_text.strip()
        if not trimmed:
            raise DictionaryError("EMPTY_TERM")
        if self._storage.count() >= self.max_terms:
            raise DictionaryError("LIMIT_REACHED")
        if self._storage.term_exists(trimmed):
            raise DictionaryError("DUPLICATE_TERM")

        try:
            saved = self._storage.save(DictionaryTerm(term=trimmed))
        except sqlite3.Error as exc:
            raise DictionaryError("STORAGE_ERROR", str(exc)) from exc
        self.refresh_terms()
        return saved

    def update_term(self, term: DictionaryTerm, new_text: str) -> DictionaryTerm:
        trimmed = new_text.strip()
        if not trimmed:
            raise DictionaryError("EMPTY_TERM")
        if trimmed != term.term and self._storage.term_exists(trimmed):
            raise DictionaryError("DUPLICATE_TERM")

        try:
            updated = self._storage.update(term.model_copy(update={"term": trimmed}))
        except sqlite3.Error as exc:
            raise DictionaryError("STORAGE_ERROR", str(exc)) from exc
        self.refresh_terms()
        return updated

    def toggle_term(self, term: DictionaryTerm) -> DictionaryTerm:
        try:
            updated = self._storage.update(term.model_copy(update={"is_enabled": not term.is_enabled}))
        except sqlite3.Error as exc:
            raise DictionaryError("STORAGE_ERROR", str(exc)) from exc
        self.refresh_terms()
        logger.info(
            "Dictionary: toggled term '%s' to %s",
            term.term,
            "enabled" if updated.is_enabled else "disabled",
        )
        return updated

    def delete_term(self, term: DictionaryTerm) -> None:
        try:
            self._storage.delete(term)
        except sqlite3.Error as exc:
            raise DictionaryError("STORAGE_ERROR", str(exc)) from exc
        self.refresh_terms()

    def find_term(self, term_id: int) -> Optional[DictionaryTerm]:
        for term in self._terms:
            if term.id == term_id:
                return term
        return None

    def filter_terms(self, query: str) -> List[DictionaryTerm]:
        needle = query.strip().casefold()
        if not needle:
            return self.terms
        return [t for t in self._terms if needle in t.term.casefold()]

    def build_prompt(self) -> str:
        if not self._enabled_terms:
            return ""
        logger.debug("Dictionary: built prompt with %d terms", len(self._enabled_terms))
        return "Common terms: " + ", ".join(self._enabled_terms)
