from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .base import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "com.talkflow.TalkFlow"
DEFAULT_ACCOUNT = "openai-api-key"


class KeyringCredentialStore(CredentialStore):
    """API key kept in the OS credential store through ``keyring``.

    Failures are logged rather than raised: a missing or locked keychain
    reads as "no key configured".
    """

    def __init__(
        self,
        service: str = DEFAULT_SERVICE,
        account: str = DEFAULT_ACCOUNT,
        backend: Optional[Any] = None,
    ):
        self._service = service
        self._account = account
        self._backend = backend
        self._lock = RLock()
        self._has_key_cache: Optional[bool] = None

    def _keyring(self) -> Any:
        return self._backend if self._backend is not None else keyring

    def set_api_key(self, key: str) -> None:
        with self._lock:
            self.delete_api_key()
            try:
                self._keyring().set_password(self._service, self._account, key)
            except KeyringError as exc:
                logger.error("Failed to save API key: %s", exc)
                return
            self._has_key_cache = True
        logger.info("API key saved to credential store")

    def get_api_key(self) -> Optional[str]:
        with self._lock:
            try:
                value = self._keyring().get_password(self._service, self._account)
            except KeyringError as exc:
                logger.error("Failed to read API key: %s", exc)
                return None
            key = value if value else None
            self._has_key_cache = key is not None
            return key

    def delete_api_key(self) -> None:
        with self._lock:
            try:
                self._keyring().delete_password(self._service, self._account)
            except PasswordDeleteError:
                pass
            except KeyringError as exc:
                logger.error("Failed to delete API key: %s", exc)
                return
            self._has_key_cache = False
        logger.debug("API key deleted from credential store")

    def has_api_key(self) -> bool:
        return self.get_api_key() is not None

    def has_api_key_without_fetch(self) -> bool:
        with self._lock:
            if self._has_key_cache is not None:
                return self._has_key_cache
        return self.has_api_key()

    def migrate_if_needed(self) -> None:
        # Single-entry layout; nothing to migrate yet.
        return None
