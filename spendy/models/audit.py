"""
Audit Models for Spendy

Every session transition and authentication outcome is recorded.
This provides:
1. Traceability of why the app locked or logged out
2. Debugging information when a refresh or login fails
3. A local history the user can inspect

DESIGN DECISION: Audit events are append-only and NEVER carry secrets.
Tokens, PINs and passwords must not reach `details` or `description`.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from spendy.models.session import AuthState


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the session lifecycle has its own event type.
    """
    # Lifecycle
    COLD_START = "cold_start"
    STATE_CHANGED = "state_changed"
    APP_LOCKED = "app_locked"

    # Credentials
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    REGISTRATION_SUCCEEDED = "registration_succeeded"
    REGISTRATION_FAILED = "registration_failed"
    PIN_SET = "pin_set"

    # Re-authentication
    UNLOCK_SUCCEEDED = "unlock_succeeded"
    UNLOCK_FAILED = "unlock_failed"
    BIOMETRIC_SUCCEEDED = "biometric_succeeded"
    BIOMETRIC_FAILED = "biometric_failed"

    # Tokens
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"

    # Teardown
    LOGOUT = "logout"
    SESSION_EXPIRED = "session_expired"

    # Profile
    PROFILE_FETCHED = "profile_fetched"
    PROFILE_FETCH_FAILED = "profile_fetch_failed"
    PROFILE_UPDATED = "profile_updated"

    # Data
    DASHBOARD_LOADED = "dashboard_loaded"
    DASHBOARD_LOAD_FAILED = "dashboard_load_failed"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Session context
    state: Optional[AuthState] = Field(
        default=None,
        description="AuthState after the event"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one login attempt)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data (never secrets)"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user intent?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "state": self.state.value if self.state else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.state_changed(AuthState.LOCKED, AuthState.AUTHENTICATED)
        event = AuditEventBuilder.login_failed("Login failed: 401", correlation_id)
    """

    @staticmethod
    def cold_start(state: AuthState) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLD_START,
            state=state,
            description=f"Cold start resolved to {state.value}",
        )

    @staticmethod
    def state_changed(old: AuthState, new: AuthState) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_CHANGED,
            severity=AuditSeverity.DEBUG,
            state=new,
            description=f"Auth state {old.value} -> {new.value}",
            details={"from": old.value, "to": new.value},
        )

    @staticmethod
    def app_locked(state: AuthState) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.APP_LOCKED,
            state=state,
            description="App locked",
        )

    @staticmethod
    def login_succeeded(
        username: str,
        state: AuthState,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            state=state,
            correlation_id=correlation_id,
            description=f"User {username} logged in",
            details={"username": username},
            is_user_action=True,
        )

    @staticmethod
    def login_failed(
        username: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Login failed for {username}",
            details={"username": username},
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def registration_succeeded(
        username: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REGISTRATION_SUCCEEDED,
            state=AuthState.PIN_SETUP,
            correlation_id=correlation_id,
            description=f"User {username} registered",
            details={"username": username},
            is_user_action=True,
        )

    @staticmethod
    def registration_failed(
        username: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REGISTRATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Registration failed for {username}",
            details={"username": username},
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def pin_set() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_SET,
            state=AuthState.AUTHENTICATED,
            description="PIN configured",
            is_user_action=True,
        )

    @staticmethod
    def unlock(succeeded: bool, method: str, state: AuthState) -> AuditEvent:
        if method == "biometrics":
            event_type = (
                AuditEventType.BIOMETRIC_SUCCEEDED
                if succeeded
                else AuditEventType.BIOMETRIC_FAILED
            )
        else:
            event_type = (
                AuditEventType.UNLOCK_SUCCEEDED
                if succeeded
                else AuditEventType.UNLOCK_FAILED
            )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.INFO if succeeded else AuditSeverity.WARNING,
            state=state,
            description=f"Unlock with {method} {'succeeded' if succeeded else 'failed'}",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def token_refreshed(succeeded: bool, reason: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.TOKEN_REFRESHED
                if succeeded
                else AuditEventType.TOKEN_REFRESH_FAILED
            ),
            severity=AuditSeverity.INFO if succeeded else AuditSeverity.WARNING,
            description="Session refreshed" if succeeded else "Session refresh failed",
            error_message=reason,
        )

    @staticmethod
    def logout(forced: bool) -> AuditEvent:
        if forced:
            return AuditEvent(
                event_type=AuditEventType.SESSION_EXPIRED,
                severity=AuditSeverity.WARNING,
                state=AuthState.UNAUTHENTICATED,
                description="Session expired, forced logout",
            )
        return AuditEvent(
            event_type=AuditEventType.LOGOUT,
            state=AuthState.UNAUTHENTICATED,
            description="User logged out",
            is_user_action=True,
        )

    @staticmethod
    def profile_fetched(username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_FETCHED,
            severity=AuditSeverity.DEBUG,
            description=f"Profile fetched for {username}",
            details={"username": username},
        )

    @staticmethod
    def profile_fetch_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_FETCH_FAILED,
            severity=AuditSeverity.WARNING,
            description="Profile fetch failed",
            error_message=error_message,
        )

    @staticmethod
    def profile_updated() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            description="Profile updated",
            is_user_action=True,
        )

    @staticmethod
    def dashboard_loaded(
        transaction_count: int,
        outflow_count: int,
        filter_mode: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DASHBOARD_LOADED,
            severity=AuditSeverity.DEBUG,
            description=f"Dashboard loaded with {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "outflow_count": outflow_count,
                "filter_mode": filter_mode,
            },
        )

    @staticmethod
    def dashboard_load_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DASHBOARD_LOAD_FAILED,
            severity=AuditSeverity.WARNING,
            description="Dashboard load failed",
            error_message=error_message,
        )

    @staticmethod
    def storage_error(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Secure store {operation} failed",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
