"""Services package."""

from spendy.services.biometrics import (
    BiometricAuthenticatorInterface,
    UnavailableBiometrics,
)
from spendy.services.errors import (
    AuthRejected,
    MalformedResponse,
    NetworkFailure,
    ServiceError,
    SessionExpired,
)
from spendy.services.expenses import (
    ExpenseTransportInterface,
    HttpExpenseTransport,
)
from spendy.services.identity import IdentityClient
from spendy.services.secure_store import (
    FileSecureStore,
    InMemorySecureStore,
    SecureStoreError,
    SecureStoreInterface,
    StorageFailure,
)
from spendy.services.transport import HttpTransport, TransportResponse

__all__ = [
    # Errors
    "ServiceError",
    "NetworkFailure",
    "AuthRejected",
    "SessionExpired",
    "MalformedResponse",
    # Transport
    "HttpTransport",
    "TransportResponse",
    # Identity
    "IdentityClient",
    # Secure store
    "SecureStoreInterface",
    "SecureStoreError",
    "StorageFailure",
    "FileSecureStore",
    "InMemorySecureStore",
    # Biometrics
    "BiometricAuthenticatorInterface",
    "UnavailableBiometrics",
    # Expenses
    "ExpenseTransportInterface",
    "HttpExpenseTransport",
]
