"""
File-Backed Secure Store

DESIGN DECISION: Secrets live in a single JSON document with owner-only
permissions (0600), shaped as {service: {account: secret}}.

Every write replaces the WHOLE document atomically:
- the new content is written to a temporary file in the same directory,
- flushed and fsync'ed,
- then renamed over the target with os.replace.

A crash mid-write therefore leaves either the previous document or the
new one, never a mix. That is what makes `save_many` all-or-nothing for
the token pair: both tokens are in the same document.

All file I/O runs on a worker thread (asyncio.to_thread); a threading
lock serializes read-modify-write cycles across threads.
"""

import asyncio
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Iterable, Optional

import structlog

from spendy.config import get_settings
from spendy.services.secure_store.interface import (
    SecureStoreInterface,
    StorageFailure,
)


logger = structlog.get_logger(__name__)

Document = dict[str, dict[str, str]]


class FileSecureStore(SecureStoreInterface):
    """
    Secure store persisted to a JSON file.

    Survives process restarts. Unavailable only when the file cannot be
    read or written, in which case StorageFailure is raised.
    """

    def __init__(self, path: Optional[str] = None, fsync_after_write: bool = True):
        self._path = Path(path or get_settings().secure_store.path)
        self._fsync = fsync_after_write
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------------
    # Document I/O (blocking, called on worker threads)
    # -------------------------------------------------------------------------

    def _load(self) -> Document:
        """Read the whole document. A missing file is an empty store."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageFailure(f"Failed to read secure store: {e}") from e

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageFailure(f"Secure store is corrupted: {e}") from e

        if not isinstance(data, dict):
            raise StorageFailure("Secure store is corrupted: unexpected layout")
        return data

    def _write(self, document: Document) -> None:
        """Atomically replace the document on disk."""
        directory = self._path.parent
        temp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                prefix=self._path.name + "-",
                suffix=".tmp",
                dir=directory,
                delete=False,
            ) as tf:
                temp_name = tf.name
                os.chmod(temp_name, 0o600)
                json.dump(document, tf, sort_keys=True)
                tf.flush()
                if self._fsync:
                    os.fsync(tf.fileno())

            os.replace(temp_name, self._path)
            temp_name = None
        except OSError as e:
            raise StorageFailure(f"Failed to write secure store: {e}") from e
        finally:
            if temp_name and os.path.exists(temp_name):
                try:
                    os.unlink(temp_name)
                except OSError:
                    logger.warning("secure_store_temp_cleanup_failed", path=temp_name)

        if self._fsync:
            self._fsync_directory(directory)

    def _fsync_directory(self, directory: Path) -> None:
        # Not supported on every platform; the rename already happened.
        try:
            dir_fd = os.open(directory, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError as e:
            logger.debug("secure_store_dir_fsync_failed", error=str(e))
        finally:
            os.close(dir_fd)

    def _update(self, service: str, changes: dict[str, Optional[str]]) -> None:
        """Apply changes (None deletes) to one service in a single atomic write."""
        with self._lock:
            document = self._load()
            secrets = dict(document.get(service, {}))
            for account, secret in changes.items():
                if secret is None:
                    secrets.pop(account, None)
                else:
                    secrets[account] = secret

            if secrets == document.get(service, {}):
                return

            if secrets:
                document[service] = secrets
            else:
                document.pop(service, None)
            self._write(document)

    def _read_one(self, service: str, account: str) -> Optional[str]:
        with self._lock:
            document = self._load()
        value = document.get(service, {}).get(account)
        return value if isinstance(value, str) else None

    # -------------------------------------------------------------------------
    # Interface
    # -------------------------------------------------------------------------

    async def save(self, secret: str, service: str, account: str) -> None:
        await asyncio.to_thread(self._update, service, {account: secret})

    async def read(self, service: str, account: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_one, service, account)

    async def delete(self, service: str, account: str) -> None:
        await asyncio.to_thread(self._update, service, {account: None})

    async def save_many(self, service: str, secrets: dict[str, str]) -> None:
        await asyncio.to_thread(self._update, service, dict(secrets))

    async def delete_many(self, service: str, accounts: Iterable[str]) -> None:
        changes: dict[str, Optional[str]] = {account: None for account in accounts}
        await asyncio.to_thread(self._update, service, changes)
