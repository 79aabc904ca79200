"""
Abstract Secure Store Interface

DESIGN DECISION: Secret storage is a capability, not an implementation.
The session layer only needs get/set/delete by key, namespaced by a
service identifier, atomic per key and surviving process restarts.
Defining the interface lets us:
1. Swap the file-backed store for an OS keychain later
2. Use in-memory storage for testing
3. Keep the session state machine decoupled from persistence

The methods are async so implementations are free to do blocking I/O
on a worker thread without stalling the event loop.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional


class SecureStoreInterface(ABC):
    """
    Abstract interface for secret storage.

    Any implementation (file, OS keychain, in-memory) must implement
    these methods. A failed read or write raises StorageFailure; an absent
    secret is NOT an error and reads as None.
    """

    @abstractmethod
    async def save(self, secret: str, service: str, account: str) -> None:
        """
        Store (or overwrite) a secret.

        Args:
            secret: The secret value
            service: Namespace the secret belongs to
            account: Key of the secret inside the namespace

        Raises:
            StorageFailure: If the write fails
        """
        pass

    @abstractmethod
    async def read(self, service: str, account: str) -> Optional[str]:
        """
        Read a secret.

        Returns:
            The secret, or None if it does not exist

        Raises:
            StorageFailure: If the store cannot be read
        """
        pass

    @abstractmethod
    async def delete(self, service: str, account: str) -> None:
        """
        Delete a secret. Deleting an absent secret is a no-op.

        Raises:
            StorageFailure: If the write fails
        """
        pass

    @abstractmethod
    async def save_many(self, service: str, secrets: dict[str, str]) -> None:
        """
        Store several secrets all-or-nothing.

        Either every secret is written or none of the previous values
        is overwritten. Used for the access/refresh token pair.

        Raises:
            StorageFailure: If the write fails
        """
        pass

    @abstractmethod
    async def delete_many(self, service: str, accounts: Iterable[str]) -> None:
        """
        Delete several secrets all-or-nothing.

        Raises:
            StorageFailure: If the write fails
        """
        pass


class SecureStoreError(Exception):
    """Base exception for secure store operations."""
    pass


class StorageFailure(SecureStoreError):
    """The secure store could not be read or written."""
    pass
