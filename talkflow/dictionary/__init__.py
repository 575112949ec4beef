"""
Custom vocabulary boundary for TalkFlow.

Design intent:
- Let users steer transcription with a short list of domain terms.
- Validate terms (empty/duplicate/limit) before they reach storage.
- Expose enabled terms only as a plain prompt string.
"""

from .manager import MAX_TERMS, DictionaryError, DictionaryManager
from .storage import DictionaryStorage, DictionaryStorageProtocol

__all__ = [
    "MAX_TERMS",
    "DictionaryError",
    "DictionaryManager",
    "DictionaryStorage",
    "DictionaryStorageProtocol",
]
