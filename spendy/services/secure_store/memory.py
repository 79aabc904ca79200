"""
In-Memory Secure Store

Process-local implementation of the secure store interface. Secrets are
lost when the process exits, so this is meant for tests and for
ephemeral sessions where nothing should touch the disk.
"""

import asyncio
from typing import Iterable, Optional

from spendy.services.secure_store.interface import SecureStoreInterface


class InMemorySecureStore(SecureStoreInterface):
    """Dict-backed secure store keyed by (service, account)."""

    def __init__(self, initial: Optional[dict[tuple[str, str], str]] = None):
        self._secrets: dict[tuple[str, str], str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def save(self, secret: str, service: str, account: str) -> None:
        async with self._lock:
            self._secrets[(service, account)] = secret

    async def read(self, service: str, account: str) -> Optional[str]:
        return self._secrets.get((service, account))

    async def delete(self, service: str, account: str) -> None:
        async with self._lock:
            self._secrets.pop((service, account), None)

    async def save_many(self, service: str, secrets: dict[str, str]) -> None:
        async with self._lock:
            updated = dict(self._secrets)
            for account, secret in secrets.items():
                updated[(service, account)] = secret
            self._secrets = updated

    async def delete_many(self, service: str, accounts: Iterable[str]) -> None:
        async with self._lock:
            for account in list(accounts):
                self._secrets.pop((service, account), None)

    def snapshot(self) -> dict[tuple[str, str], str]:
        """Copy of every stored secret. Test helper; never log the result."""
        return dict(self._secrets)
