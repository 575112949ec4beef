import sqlite3

import pytest

from talkflow.dictionary import MAX_TERMS, DictionaryError, DictionaryManager, DictionaryStorage
from talkflow.internal_core.contracts import DictionaryTerm


def _manager(tmp_path) -> DictionaryManager:
    return DictionaryManager(DictionaryStorage(tmp_path / "talkflow.sqlite"))


def test_add_term_trims_and_persists(tmp_path) -> None:
    manager = _manager(tmp_path)
    saved = manager.add_term("  Kubernetes \n")

    assert saved.term == "Kubernetes"
    assert saved.id is not None
    assert manager.term_count == 1
    assert [t.term for t in DictionaryStorage(tmp_path / "talkflow.sqlite").fetch_all()] == ["Kubernetes"]


def test_add_term_rejects_empty(tmp_path) -> None:
    with pytest.raises(DictionaryError) as excinfo:
        _manager(tmp_path).add_term("   ")
    assert excinfo.value.code == "EMPTY_TERM"
    assert str(excinfo.value) == "Term cannot be empty"


def test_duplicates_are_case_sensitive(tmp_path) -> None:
    manager = _manager(tmp_path)
    manager.add_term("BLK")
    manager.add_term("blk")

    with pytest.raises(DictionaryError) as excinfo:
        manager.add_term(" BLK ")
    assert excinfo.value.code == "DUPLICATE_TERM"
    assert manager.term_count == 2


def test_limit_is_enforced(tmp_path) -> None:
    manager = _manager(tmp_path)
    for i in range(MAX_TERMS):
        manager.add_term(f"term-{i}")

    assert manager.is_at_limit is True
    with pytest.raises(DictionaryError) as excinfo:
        manager.add_term("one-too-many")
    assert excinfo.value.code == "LIMIT_REACHED"


def test_build_prompt_lists_enabled_terms_newest_first(tmp_path) -> None:
    manager = _manager(tmp_path)
    assert manager.build_prompt() == ""

    alpha = manager.add_term("alpha")
    manager.add_term("beta")
    assert manager.build_prompt() == "Common terms: beta, alpha"

    manager.toggle_term(alpha)
    assert manager.build_prompt() == "Common terms: beta"
    assert manager.enabled_terms == ["beta"]


def test_toggle_flips_enabled_state(tmp_path) -> None:
    manager = _manager(tmp_path)
    term = manager.add_term("gRPC")

    disabled = manager.toggle_term(term)
    assert disabled.is_enabled is False
    assert manager.find_term(term.id).is_enabled is False

    enabled = manager.toggle_term(disabled)
    assert enabled.is_enabled is True


def test_update_term_validates_text(tmp_path) -> None:
    manager = _manager(tmp_path)
    first = manager.add_term("PostgreSQL")
    manager.add_term("Redis")

    updated = manager.update_term(first, "  Postgres ")
    assert updated.term == "Postgres"
    assert manager.find_term(first.id).term == "Postgres"

    assert manager.update_term(updated, "Postgres").term == "Postgres"

    with pytest.raises(DictionaryError) as excinfo:
        manager.update_term(updated, "Redis")
    assert excinfo.value.code == "DUPLICATE_TERM"

    with pytest.raises(DictionaryError) as excinfo:
        manager.update_term(updated, " ")
    assert excinfo.value.code == "EMPTY_TERM"


def test_delete_term(tmp_path) -> None:
    manager = _manager(tmp_path)
    term = manager.add_term("FastAPI")
    manager.delete_term(term)
    assert manager.terms == []
    assert manager.find_term(term.id) is None


def test_filter_terms_is_case_insensitive(tmp_path) -> None:
    manager = _manager(tmp_path)
    for text in ["PyTorch", "NumPy", "pandas"]:
        manager.add_term(text)

    assert sorted(t.term for t in manager.filter_terms("py")) == ["NumPy", "PyTorch"]
    assert len(manager.filter_terms("  ")) == 3
    assert manager.filter_terms("rust") == []


def test_storage_fetch_enabled_and_exists(tmp_path) -> None:
    storage = DictionaryStorage(tmp_path / "talkflow.sqlite")
    kept = storage.save(DictionaryTerm(term="kept"))
    hidden = storage.save(DictionaryTerm(term="hidden", is_enabled=False))

    assert [t.term for t in storage.fetch_enabled()] == ["kept"]
    assert storage.term_exists("hidden") is True
    assert storage.term_exists("Hidden") is False
    assert storage.count() == 2

    storage.delete(kept)
    assert [t.id for t in storage.terms] == [hidden.id]


def test_storage_rejects_duplicate_insert(tmp_path) -> None:
    storage = DictionaryStorage(tmp_path / "talkflow.sqlite")
    storage.save(DictionaryTerm(term="same"))
    with pytest.raises(sqlite3.IntegrityError):
        storage.save(DictionaryTerm(term="same"))


class _FailingStorage(DictionaryStorage):
    def save(self, term):
        raise sqlite3.OperationalError("disk I/O error")


def test_storage_failures_become_storage_errors(tmp_path) -> None:
    manager = DictionaryManager(_FailingStorage(tmp_path / "talkflow.sqlite"))
    with pytest.raises(DictionaryError) as excinfo:
        manager.add_term("anything")
    assert excinfo.value.code == "STORAGE_ERROR"
    assert "disk I/O error" in str(excinfo.value)
