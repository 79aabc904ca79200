"""
Audit Logger

DESIGN DECISION: Every session transition and auth outcome is logged.
This provides:
1. Traceability of why the app locked or logged the user out
2. Debugging capability for refresh/login failures
3. A history the user can inspect

The audit logger:
- Is async to not block the session owner
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
- Never receives secrets (the event builders don't accept them)
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from spendy.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from spendy.models.session import AuthState
from spendy.audit.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("spendy.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_cold_start(self, state: AuthState) -> None:
        await self.log(AuditEventBuilder.cold_start(state))

    async def log_state_changed(self, old: AuthState, new: AuthState) -> None:
        await self.log(AuditEventBuilder.state_changed(old, new))

    async def log_app_locked(self, state: AuthState) -> None:
        await self.log(AuditEventBuilder.app_locked(state))

    async def log_login(
        self,
        username: str,
        succeeded: bool,
        state: AuthState,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a login attempt."""
        if succeeded:
            event = AuditEventBuilder.login_succeeded(username, state, correlation_id)
        else:
            event = AuditEventBuilder.login_failed(
                username, error_message or "unknown error", correlation_id
            )
        await self.log(event)

    async def log_registration(
        self,
        username: str,
        succeeded: bool,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a registration attempt."""
        if succeeded:
            event = AuditEventBuilder.registration_succeeded(username, correlation_id)
        else:
            event = AuditEventBuilder.registration_failed(
                username, error_message or "unknown error", correlation_id
            )
        await self.log(event)

    async def log_pin_set(self) -> None:
        await self.log(AuditEventBuilder.pin_set())

    async def log_unlock(self, succeeded: bool, method: str, state: AuthState) -> None:
        """Log a PIN or biometric unlock attempt."""
        await self.log(AuditEventBuilder.unlock(succeeded, method, state))

    async def log_token_refresh(self, succeeded: bool, reason: Optional[str] = None) -> None:
        await self.log(AuditEventBuilder.token_refreshed(succeeded, reason))

    async def log_logout(self, forced: bool) -> None:
        """Log a logout; forced logouts come from the 401 policy."""
        await self.log(AuditEventBuilder.logout(forced))

    async def log_profile_fetched(self, username: str) -> None:
        await self.log(AuditEventBuilder.profile_fetched(username))

    async def log_profile_fetch_failed(self, error_message: str) -> None:
        await self.log(AuditEventBuilder.profile_fetch_failed(error_message))

    async def log_profile_updated(self) -> None:
        await self.log(AuditEventBuilder.profile_updated())

    async def log_dashboard_loaded(
        self,
        transaction_count: int,
        outflow_count: int,
        filter_mode: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.dashboard_loaded(transaction_count, outflow_count, filter_mode)
        )

    async def log_dashboard_load_failed(self, error_message: str) -> None:
        await self.log(AuditEventBuilder.dashboard_load_failed(error_message))

    async def log_storage_error(self, operation: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.storage_error(operation, error_message))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(error_type, error_message, details))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user intent (e.g., a login attempt).
    """
    return uuid4()
