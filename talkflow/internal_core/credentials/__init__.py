from __future__ import annotations

from .base import CredentialStore
from .keyring_store import KeyringCredentialStore
from .mock import MockKeychainService

__all__ = ["CredentialStore", "KeyringCredentialStore", "MockKeychainService"]
