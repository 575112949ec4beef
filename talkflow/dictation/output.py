from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock
from typing import List


class TextOutput(ABC):
    """Destination for finished transcriptions."""

    @abstractmethod
    def insert(self, text: str) -> None: ...


class BufferTextOutput(TextOutput):
    def __init__(self) -> None:
        self._lock = Lock()
        self._inserted: List[str] = []

    @property
    def inserted(self) -> List[str]:
        with self._lock:
            return list(self._inserted)

    @property
    def last(self) -> str | None:
        with self._lock:
            return self._inserted[-1] if self._inserted else None

    def insert(self, text: str) -> None:
        with self._lock:
            self._inserted.append(text)

    def clear(self) -> None:
        with self._lock:
            self._inserted.clear()
