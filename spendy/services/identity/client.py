"""
Identity Endpoint Client

Talks to the external identity service:

    POST /login     {username, password}                    -> tokens
    POST /register  {username, password, email, name, surname} -> tokens
    POST /refresh   {refreshToken}                          -> rotated tokens
    GET  /profile   (bearer)                                -> profile
    PUT  /updateProfile {name, surname} (bearer)

Only the unauthenticated calls are sent from here. Bearer calls go through
spendy.session.authorized.AuthorizedRequester so that a 401 anywhere
triggers the logout policy; this module only decodes their responses.

DESIGN DECISION: Token responses are decoded as a tagged union with an
explicit fallback order instead of probing dictionary keys:
    1. TokenPairResponse   {accessToken, refreshToken}
    2. LegacyTokenResponse {token}   (same token for access and refresh)
Anything else is a MalformedResponse.
"""

from typing import Any, Union

import structlog
from pydantic import ValidationError

from spendy.models.session import (
    LegacyTokenResponse,
    LoginRequest,
    RegistrationRequest,
    TokenPair,
    TokenPairResponse,
    UserProfile,
)
from spendy.services.errors import AuthRejected, MalformedResponse, NetworkFailure
from spendy.services.transport import HttpTransport, TransportResponse


logger = structlog.get_logger(__name__)

LOGIN_PATH = "/login"
REGISTER_PATH = "/register"
REFRESH_PATH = "/refresh"
PROFILE_PATH = "/profile"
UPDATE_PROFILE_PATH = "/updateProfile"

# Statuses meaning "the server understood and refused"
REJECTION_STATUSES = frozenset({400, 401, 403, 409})

AuthResponse = Union[TokenPairResponse, LegacyTokenResponse]

# Tried in order; the first shape that validates wins.
AUTH_RESPONSE_SHAPES: tuple[type, ...] = (TokenPairResponse, LegacyTokenResponse)


def decode_auth_response(payload: Any, allow_legacy: bool = True) -> TokenPair:
    """
    Decode an identity response into a TokenPair.

    Args:
        payload: Decoded JSON body
        allow_legacy: Accept the single-token legacy shape

    Raises:
        MalformedResponse: If no accepted shape matches
    """
    if not isinstance(payload, dict):
        raise MalformedResponse("Identity response is not a JSON object")

    shapes = AUTH_RESPONSE_SHAPES if allow_legacy else (TokenPairResponse,)
    for shape in shapes:
        try:
            decoded: AuthResponse = shape.model_validate(payload)
        except ValidationError:
            continue
        return decoded.to_pair()

    raise MalformedResponse("Identity response carries no usable token")


def decode_profile(response: TransportResponse) -> UserProfile:
    """
    Decode a /profile response.

    Raises:
        MalformedResponse: If the body is not a valid profile
    """
    payload = response.payload()
    try:
        return UserProfile.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid profile payload: {e.error_count()} errors") from e


class IdentityClient:
    """
    Client for the unauthenticated identity calls.

    All methods block; the session manager runs them on a worker thread.
    """

    def __init__(self, transport: HttpTransport):
        self._transport = transport

    def _check_status(self, response: TransportResponse, operation: str) -> None:
        if response.status_code == 200:
            return
        if response.status_code in REJECTION_STATUSES:
            raise AuthRejected(
                f"{operation} failed: {response.status_code}",
                status_code=response.status_code,
            )
        raise NetworkFailure(
            f"{operation} failed: {response.status_code}",
            status_code=response.status_code,
        )

    def login(self, request: LoginRequest) -> TokenPair:
        """
        Exchange credentials for a token pair.

        Raises:
            AuthRejected: Bad credentials
            NetworkFailure: Transport problem or unexpected status
            MalformedResponse: Body carries no usable token
        """
        response = self._transport.request("POST", LOGIN_PATH, json=request.to_payload())
        self._check_status(response, "Login")
        return decode_auth_response(response.payload())

    def register(self, request: RegistrationRequest) -> TokenPair:
        """
        Create an account and return its token pair.

        Raises:
            AuthRejected: Account refused (e.g. username taken)
            NetworkFailure: Transport problem or unexpected status
            MalformedResponse: Body carries no usable token
        """
        response = self._transport.request(
            "POST", REGISTER_PATH, json=request.to_payload()
        )
        self._check_status(response, "Registration")
        return decode_auth_response(response.payload())

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate the token pair.

        The refresh endpoint must answer with BOTH tokens; the legacy
        single-token shape is not accepted here.
        """
        response = self._transport.request(
            "POST", REFRESH_PATH, json={"refreshToken": refresh_token}
        )
        logger.debug("refresh_response", status_code=response.status_code)
        self._check_status(response, "Refresh")
        return decode_auth_response(response.payload(), allow_legacy=False)
