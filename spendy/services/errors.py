"""
Service error taxonomy.

Every remote operation fails with one of these:

- NetworkFailure: connectivity/transport problem, or a status the caller
  cannot interpret. Reported to the user, never changes AuthState.
- AuthRejected: bad credentials or a request the identity endpoint refused.
- SessionExpired: 401 on an authenticated call. ALWAYS terminal; by the
  time a caller sees it the session has already been logged out.
- MalformedResponse: the response body could not be decoded into the
  expected shape. Treated as the calling operation's failure.
"""

from typing import Optional


class ServiceError(Exception):
    """Base exception for remote service errors."""
    pass


class NetworkFailure(ServiceError):
    """Could not reach the service, or it answered with an unusable status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthRejected(ServiceError):
    """The identity endpoint rejected the credentials."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SessionExpired(ServiceError):
    """An authenticated request was answered with 401 Unauthorized."""
    pass


class MalformedResponse(ServiceError):
    """The response body did not match any accepted shape."""
    pass
