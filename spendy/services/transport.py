"""
HTTP Transport

Thin wrapper around requests.Session shared by the identity client and
the expense transport.

This layer:
1. Joins paths onto a base URL and sends JSON
2. Attaches the bearer token when one is given
3. Retries requests that never reached the server (connection errors)
4. Maps transport exceptions to NetworkFailure

It does NOT interpret status codes. Deciding what a 401 means is the job
of the callers (see spendy.session.authorized).

DESIGN DECISION: Only connection errors are retried. A read timeout on
POST /refresh may mean the server already rotated the refresh token;
replaying it would send a token that is no longer valid.
"""

import json
from typing import Any, Optional

import requests
from pydantic import BaseModel
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from spendy.config import IdentitySettings, get_settings
from spendy.services.errors import MalformedResponse, NetworkFailure


class TransportResponse(BaseModel):
    """Status and raw body of an HTTP response."""

    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def payload(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            MalformedResponse: If the body is not valid JSON
        """
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedResponse(f"Response is not valid JSON: {e}") from e


class HttpTransport:
    """
    Synchronous JSON-over-HTTP transport.

    Calls block; async callers run them with asyncio.to_thread so the
    event loop owning the session state is never stalled.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        settings: Optional[IdentitySettings] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._settings = settings or get_settings().identity

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, bearer_token: Optional[str]) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if bearer_token:
            headers["Authorization"] = f"Bearer {bearer_token}"
        return headers

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.retry_wait_min_seconds,
                max=self._settings.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(requests.ConnectionError),
            reraise=True,
        )

    def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        bearer_token: Optional[str] = None,
    ) -> TransportResponse:
        """
        Send a request and return its status and body.

        Args:
            method: HTTP method
            path: Path relative to the base URL (leading slash)
            json: Optional JSON body
            bearer_token: Access token for the Authorization header

        Raises:
            NetworkFailure: If the request could not be completed
        """
        url = f"{self._base_url}{path}"
        headers = self._headers(bearer_token)

        try:
            for attempt in self._retrying():
                with attempt:
                    response = self._session.request(
                        method,
                        url,
                        json=json,
                        headers=headers,
                        timeout=self._settings.timeout_seconds,
                    )
        except requests.ConnectionError as e:
            raise NetworkFailure(f"Could not connect to {self._base_url}: {e}") from e
        except requests.Timeout as e:
            raise NetworkFailure(f"Request to {path} timed out") from e
        except requests.RequestException as e:
            raise NetworkFailure(f"Request to {path} failed: {e}") from e

        return TransportResponse(
            status_code=response.status_code,
            body=response.text or "",
        )

    def close(self) -> None:
        self._session.close()
