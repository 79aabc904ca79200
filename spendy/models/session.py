"""
Session Models for Spendy

These models describe everything the session lifecycle manipulates:
the authoritative AuthState, the token pair, the user profile and the
payloads exchanged with the identity endpoint.

DESIGN DECISION: Secrets (tokens, PIN, password) never appear in a
model's repr. Models are routinely logged while debugging and a secret
in a log line is a leaked secret.
"""

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class AuthState(str, Enum):
    """
    The single authoritative application state.

    CRITICAL: LOCKED and AUTHENTICATED may only be entered while a
    refresh token exists in the secure store. Without one the session
    collapses to UNAUTHENTICATED.
    """
    UNAUTHENTICATED = "unauthenticated"
    LOCKED = "locked"
    PIN_SETUP = "pin_setup"
    AUTHENTICATED = "authenticated"

    @property
    def requires_session(self) -> bool:
        """States that are only valid while a refresh token is stored."""
        return self in (AuthState.LOCKED, AuthState.AUTHENTICATED)


class BiometricResult(str, Enum):
    """Outcome of a platform biometric evaluation."""
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"      # User dismissed the system prompt
    UNAVAILABLE = "unavailable"  # No sensor / not enrolled


# =============================================================================
# TOKENS
# =============================================================================

class TokenPair(BaseModel):
    """
    Access/refresh bearer token pair.

    Both values are opaque strings. The pair is owned by the secure store;
    this object only lives for the duration of a single operation.
    """
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1, repr=False)
    refresh_token: str = Field(..., min_length=1, repr=False)


class TokenPairResponse(BaseModel):
    """Identity response carrying a distinct access and refresh token."""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1, repr=False)
    refresh_token: str = Field(..., alias="refreshToken", min_length=1, repr=False)

    def to_pair(self) -> TokenPair:
        return TokenPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
        )


class LegacyTokenResponse(BaseModel):
    """
    Legacy identity response with a single token.

    The token is used both as access and refresh token.
    """

    token: str = Field(..., min_length=1, repr=False)

    def to_pair(self) -> TokenPair:
        return TokenPair(access_token=self.token, refresh_token=self.token)


# =============================================================================
# REQUESTS
# =============================================================================

# Passwords are sent exactly as typed; every other text field is trimmed.
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


class LoginRequest(BaseModel):
    """Credentials posted to /login."""

    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    password: str = Field(..., min_length=1, repr=False)

    def to_payload(self) -> dict[str, str]:
        return {"username": self.username, "password": self.password}


class RegistrationRequest(BaseModel):
    """Account data posted to /register."""

    username: TrimmedStr
    password: str = Field(..., repr=False)
    email: TrimmedStr
    name: TrimmedStr
    surname: TrimmedStr

    def to_payload(self) -> dict[str, str]:
        return {
            "username": self.username,
            "password": self.password,
            "email": self.email,
            "name": self.name,
            "surname": self.surname,
        }


class ProfileUpdate(BaseModel):
    """Editable part of the profile, sent to /updateProfile."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., max_length=100)
    surname: str = Field(..., max_length=100)

    def to_payload(self) -> dict[str, str]:
        return {"name": self.name, "surname": self.surname}


# =============================================================================
# PROFILE
# =============================================================================

class UserProfile(BaseModel):
    """
    The signed-in user's profile.

    Fetched from the identity endpoint after authentication; never
    persisted locally.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    username: str
    email: str
    name: str
    surname: str

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Optional[str]:
        """Backends send either numeric or string identifiers."""
        if v is None:
            return None
        return str(v)

    @property
    def initials(self) -> str:
        """Upper-cased first letters of name and surname."""
        return (self.name[:1] + self.surname[:1]).upper()

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}"
