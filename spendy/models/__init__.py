"""
Data Models Package

This package contains all Pydantic models used by the Spendy core.
All data flowing through the session and analytics layers conforms to
these schemas.
"""

from spendy.models.session import (
    AuthState,
    BiometricResult,
    LegacyTokenResponse,
    LoginRequest,
    ProfileUpdate,
    RegistrationRequest,
    TokenPair,
    TokenPairResponse,
    UserProfile,
)
from spendy.models.expense import (
    AnalyticsFilter,
    BucketGranularity,
    CanonicalCategory,
    CategoryMetric,
    ExpenseSummary,
    FilterMode,
    TimeSeriesPoint,
    Transaction,
    TransactionDirection,
)
from spendy.models.validation import ValidationIssue, ValidationResult
from spendy.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Session models
    "AuthState",
    "BiometricResult",
    "LegacyTokenResponse",
    "LoginRequest",
    "ProfileUpdate",
    "RegistrationRequest",
    "TokenPair",
    "TokenPairResponse",
    "UserProfile",
    # Expense models
    "AnalyticsFilter",
    "BucketGranularity",
    "CanonicalCategory",
    "CategoryMetric",
    "ExpenseSummary",
    "FilterMode",
    "TimeSeriesPoint",
    "Transaction",
    "TransactionDirection",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
