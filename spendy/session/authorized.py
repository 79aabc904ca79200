"""
Authorized Requests and the 401 Policy

CRITICAL: A 401 Unauthorized from ANY authenticated request forces a full
logout. This is a cross-cutting policy, so it lives in exactly one place:
every bearer-authenticated call in the system (profile, profile update,
expenses) is sent through an AuthorizedRequester.

Flow of one request:
1. Read the access token from the secure store (read-through)
2. Send the request on a worker thread, with the bearer header if a
   token exists (without one the server answers 401, which logs out)
3. On 401: run the logout callback, then raise SessionExpired
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from spendy.services.errors import SessionExpired
from spendy.services.transport import HttpTransport, TransportResponse
from spendy.session.tokens import TokenLifecycleManager


logger = structlog.get_logger(__name__)

UnauthorizedHandler = Callable[[], Awaitable[None]]


class AuthorizedRequester:
    """Sends bearer-authenticated requests and enforces the 401 policy."""

    def __init__(
        self,
        transport: HttpTransport,
        tokens: TokenLifecycleManager,
        on_unauthorized: UnauthorizedHandler,
    ):
        self._transport = transport
        self._tokens = tokens
        self._on_unauthorized = on_unauthorized

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
    ) -> TransportResponse:
        """
        Send an authenticated request.

        Raises:
            SessionExpired: The server answered 401; the session is gone
            NetworkFailure: Transport problem
        """
        token = await self._tokens.get_access_token()
        if token is None:
            logger.info("authenticated_request_without_token", path=path)

        response = await asyncio.to_thread(
            self._transport.request,
            method,
            path,
            json=json,
            bearer_token=token,
        )

        if response.status_code == 401:
            logger.warning("authenticated_request_unauthorized", method=method, path=path)
            await self._on_unauthorized()
            raise SessionExpired(f"{method} {path} returned 401")

        return response
