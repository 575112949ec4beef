"""
Transcription history boundary for TalkFlow.

Design intent:
- Persist every successful dictation with its provenance (source/model).
- Keep full-text search local (SQLite FTS5) with a substring fallback.
- Never let a storage failure break the dictation flow.
"""

from .storage import HistoryStorage

__all__ = ["HistoryStorage"]
