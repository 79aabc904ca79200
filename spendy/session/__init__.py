"""
Session Package

The session lifecycle: token storage and rotation, the 401 policy for
authenticated requests, and the AuthState machine that ties them to
login, PIN and biometric unlock.
"""

from spendy.session.authorized import AuthorizedRequester
from spendy.session.manager import InvalidTransitionError, SessionManager
from spendy.session.tokens import TokenLifecycleManager

__all__ = [
    "AuthorizedRequester",
    "InvalidTransitionError",
    "SessionManager",
    "TokenLifecycleManager",
]
