from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class CredentialStore(ABC):
    @abstractmethod
    def set_api_key(self, key: str) -> None: ...

    @abstractmethod
    def get_api_key(self) -> Optional[str]: ...

    @abstractmethod
    def delete_api_key(self) -> None: ...

    @abstractmethod
    def has_api_key(self) -> bool: ...

    def has_api_key_without_fetch(self) -> bool:
        return self.has_api_key()

    def migrate_if_needed(self) -> None:
        return None
