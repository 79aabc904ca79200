"""
Secure Store Package

Provides the abstract secret storage capability and two implementations:
an atomic file-backed store and an in-memory store for tests.
"""

from spendy.services.secure_store.interface import (
    SecureStoreError,
    SecureStoreInterface,
    StorageFailure,
)
from spendy.services.secure_store.file_store import FileSecureStore
from spendy.services.secure_store.memory import InMemorySecureStore

__all__ = [
    # Interface
    "SecureStoreInterface",
    # Exceptions
    "SecureStoreError",
    "StorageFailure",
    # Implementations
    "FileSecureStore",
    "InMemorySecureStore",
]
