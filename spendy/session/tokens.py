"""
Token Lifecycle Manager

Issues, stores and refreshes the access/refresh token pair.

GUARANTEES:
- Tokens are never cached in memory. Every read goes back to the secure
  store, so a write made through any other path is observed immediately.
- Both tokens are written with one all-or-nothing store call, under one
  lock. Readers never see a new access token next to an old refresh
  token.
- A failed refresh NEVER mutates storage. Deciding whether to log out is
  left to the caller.
- Concurrent refresh triggers share a single in-flight refresh.
- A store read failure is reported as "absent", which fails safe toward
  requiring re-authentication.
"""

import asyncio
from typing import Optional

import structlog

from spendy.audit import AuditLogger
from spendy.config import SecureStoreSettings, get_settings
from spendy.models.session import TokenPair
from spendy.services.errors import AuthRejected, MalformedResponse, NetworkFailure
from spendy.services.identity import IdentityClient
from spendy.services.secure_store import SecureStoreInterface, StorageFailure


logger = structlog.get_logger(__name__)


class TokenLifecycleManager:
    """
    Owner of the token pair's lifecycle.

    The pair itself is owned by the secure store; this class only knows
    how to read, write, rotate and delete it.
    """

    def __init__(
        self,
        store: SecureStoreInterface,
        identity: IdentityClient,
        settings: Optional[SecureStoreSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._identity = identity
        self._settings = settings or get_settings().secure_store
        self._audit_logger = audit_logger
        self._write_lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None
        self._last_refresh_error: Optional[str] = None

    @property
    def service(self) -> str:
        return self._settings.service

    @property
    def settings(self) -> SecureStoreSettings:
        return self._settings

    @property
    def store(self) -> SecureStoreInterface:
        return self._store

    @property
    def last_refresh_error(self) -> Optional[str]:
        """Why the most recent refresh failed, if it did."""
        return self._last_refresh_error

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _read(self, account: str) -> Optional[str]:
        try:
            return await self._store.read(self.service, account)
        except StorageFailure as e:
            logger.warning("secure_store_read_failed", account=account, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_storage_error("read", str(e))
            return None

    async def get_access_token(self) -> Optional[str]:
        """Current access token, or None if absent."""
        return await self._read(self._settings.access_token_account)

    async def get_refresh_token(self) -> Optional[str]:
        """Current refresh token, or None if absent."""
        return await self._read(self._settings.refresh_token_account)

    async def has_session(self) -> bool:
        """A session exists as long as a refresh token is stored."""
        return await self.get_refresh_token() is not None

    async def authorization_header(self) -> dict[str, str]:
        """Bearer header for the current access token, empty if there is none."""
        token = await self.get_access_token()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _pair_secrets(self, pair: TokenPair) -> dict[str, str]:
        return {
            self._settings.access_token_account: pair.access_token,
            self._settings.refresh_token_account: pair.refresh_token,
        }

    async def save_tokens(self, access: str, refresh: str) -> None:
        """
        Overwrite both tokens.

        Raises:
            ValueError: If either token is empty
            StorageFailure: If the store rejects the write (nothing changed)
        """
        await self.save_pair(TokenPair(access_token=access, refresh_token=refresh))

    async def save_pair(self, pair: TokenPair) -> None:
        """Overwrite both tokens with `pair` in one atomic write."""
        async with self._write_lock:
            await self._store.save_many(self.service, self._pair_secrets(pair))

    async def clear_tokens(self, include_pin: bool = False) -> None:
        """
        Delete the token pair (and optionally the PIN) in one write.

        Raises:
            StorageFailure: If the store rejects the write
        """
        accounts = [
            self._settings.access_token_account,
            self._settings.refresh_token_account,
        ]
        if include_pin:
            accounts.append(self._settings.pin_account)

        async with self._write_lock:
            await self._store.delete_many(self.service, accounts)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh_session(self) -> bool:
        """
        Rotate the token pair using the stored refresh token.

        Concurrent callers join the refresh already in flight instead of
        starting another one.

        Returns:
            True if a new pair was stored, False otherwise (storage untouched)
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _fail_refresh(self, reason: str) -> bool:
        self._last_refresh_error = reason
        logger.warning("token_refresh_failed", reason=reason)
        if self._audit_logger:
            await self._audit_logger.log_token_refresh(False, reason)
        return False

    async def _refresh(self) -> bool:
        refresh_token = await self.get_refresh_token()
        if not refresh_token:
            return await self._fail_refresh("No refresh token stored")

        try:
            pair = await asyncio.to_thread(self._identity.refresh, refresh_token)
        except (NetworkFailure, AuthRejected, MalformedResponse) as e:
            return await self._fail_refresh(str(e))

        async with self._write_lock:
            # The session may have been logged out or rotated while the
            # request was in flight; only replace the token we sent.
            current = await self._read(self._settings.refresh_token_account)
            if current != refresh_token:
                return await self._fail_refresh("Session changed during refresh")
            try:
                await self._store.save_many(self.service, self._pair_secrets(pair))
            except StorageFailure as e:
                return await self._fail_refresh(f"Could not store refreshed tokens: {e}")

        self._last_refresh_error = None
        logger.info("token_refreshed")
        if self._audit_logger:
            await self._audit_logger.log_token_refresh(True)
        return True
