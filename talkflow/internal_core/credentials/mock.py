from __future__ import annotations

from typing import Optional

from .base import CredentialStore


class MockKeychainService(CredentialStore):
    def __init__(self, stored_api_key: Optional[str] = None) -> None:
        self.stored_api_key = stored_api_key

    def set_api_key(self, key: str) -> None:
        self.stored_api_key = key

    def get_api_key(self) -> Optional[str]:
        return self.stored_api_key

    def delete_api_key(self) -> None:
        self.stored_api_key = None

    def has_api_key(self) -> bool:
        return self.stored_api_key is not None

    def has_api_key_without_fetch(self) -> bool:
        return self.stored_api_key is not None

    def migrate_if_needed(self) -> None:
        # No-op for mock
        return None
