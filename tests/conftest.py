"""
Shared test fixtures.

No real network and no real keychain in tests: the identity and expenses
APIs are replaced by a scripted transport, the secure store by the
in-memory implementation, and biometrics by a programmable stub.
"""

import asyncio
import json
import threading
from typing import Any, Callable, Optional, Union

import pytest

from spendy.audit import AuditLogger, InMemoryAuditStorage
from spendy.config import AppSettings, IdentitySettings, SecureStoreSettings
from spendy.models.session import BiometricResult
from spendy.services.biometrics import BiometricAuthenticatorInterface
from spendy.services.identity import IdentityClient
from spendy.services.secure_store import InMemorySecureStore, StorageFailure
from spendy.services.transport import HttpTransport, TransportResponse
from spendy.session import SessionManager, TokenLifecycleManager


SERVICE = "com.appios.auth"
ACCESS = "accessToken"
REFRESH = "refreshToken"
PIN = "userPIN"

Scripted = Union[TransportResponse, Exception, Callable[..., TransportResponse]]


def respond(status_code: int, payload: Any = None) -> TransportResponse:
    """Build a transport response with a JSON body."""
    body = "" if payload is None else json.dumps(payload)
    return TransportResponse(status_code=status_code, body=body)


def token_pair(access: str = "access-1", refresh: str = "refresh-1") -> dict:
    return {"accessToken": access, "refreshToken": refresh}


PROFILE = {
    "id": 7,
    "username": "mrossi",
    "email": "mario@example.com",
    "name": "Mario",
    "surname": "Rossi",
}


class ScriptedTransport(HttpTransport):
    """
    HttpTransport replacement answering from a script.

    Responses are queued per (method, path); the last queued response for
    a route is repeated once the queue is down to one entry.
    """

    def __init__(self, base_url: str = "http://identity.test"):
        super().__init__(base_url, session=None, settings=IdentitySettings())
        self._routes: dict[tuple[str, str], list[Scripted]] = {}
        self._lock = threading.Lock()
        self.calls: list[dict] = []

    def script(self, method: str, path: str, *responses: Scripted) -> "ScriptedTransport":
        self._routes.setdefault((method, path), []).extend(responses)
        return self

    def calls_to(self, method: str, path: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method and c["path"] == path]

    def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        bearer_token: Optional[str] = None,
    ) -> TransportResponse:
        with self._lock:
            self.calls.append({
                "method": method,
                "path": path,
                "json": json,
                "bearer_token": bearer_token,
            })
            queue = self._routes.get((method, path))
            if not queue:
                return respond(404, {"error": f"no script for {method} {path}"})
            scripted = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(scripted, Exception):
            raise scripted
        if callable(scripted):
            return scripted(method=method, path=path, json=json, bearer_token=bearer_token)
        return scripted


class FakeBiometrics(BiometricAuthenticatorInterface):
    """Biometric stub returning a fixed result, optionally after a gate opens."""

    def __init__(
        self,
        result: BiometricResult = BiometricResult.SUCCESS,
        gate: Optional[asyncio.Event] = None,
        error: Optional[Exception] = None,
    ):
        self.result = result
        self.gate = gate
        self.error = error
        self.reasons: list[str] = []

    async def evaluate(self, reason: str) -> BiometricResult:
        self.reasons.append(reason)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class FlakyStore(InMemorySecureStore):
    """In-memory store whose named write operations raise StorageFailure."""

    def __init__(self, initial: Optional[dict] = None, failing: tuple[str, ...] = ()):
        super().__init__(initial)
        self.failing = set(failing)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StorageFailure(f"keychain unavailable during {operation}")

    async def save(self, secret: str, service: str, account: str) -> None:
        self._check("save")
        await super().save(secret, service, account)

    async def save_many(self, service: str, secrets: dict[str, str]) -> None:
        self._check("save_many")
        await super().save_many(service, secrets)

    async def delete_many(self, service: str, accounts) -> None:
        self._check("delete_many")
        await super().delete_many(service, accounts)


def secrets_of(store: InMemorySecureStore) -> dict[str, str]:
    """Secrets of the app service keyed by account."""
    return {
        account: value
        for (service, account), value in store.snapshot().items()
        if service == SERVICE
    }


class SessionHarness:
    """Everything needed to drive a SessionManager in a test."""

    def __init__(
        self,
        store: Optional[InMemorySecureStore] = None,
        biometrics: Optional[BiometricAuthenticatorInterface] = None,
    ):
        self.store = store or InMemorySecureStore()
        self.transport = ScriptedTransport()
        self.audit_storage = InMemoryAuditStorage()
        self.audit_logger = AuditLogger(self.audit_storage)
        self.identity = IdentityClient(self.transport)
        self.tokens = TokenLifecycleManager(
            self.store,
            self.identity,
            settings=SecureStoreSettings(),
            audit_logger=self.audit_logger,
        )
        self.biometrics = biometrics or FakeBiometrics()
        self.session = SessionManager(
            self.tokens,
            self.identity,
            self.transport,
            biometrics=self.biometrics,
            audit_logger=self.audit_logger,
            settings=AppSettings(),
        )

    @property
    def secrets(self) -> dict[str, str]:
        return secrets_of(self.store)


def seeded_store(
    access: str = "access-0",
    refresh: str = "refresh-0",
    pin: Optional[str] = None,
) -> InMemorySecureStore:
    """A store holding an existing session (and optionally a PIN)."""
    initial = {(SERVICE, ACCESS): access, (SERVICE, REFRESH): refresh}
    if pin is not None:
        initial[(SERVICE, PIN)] = pin
    return InMemorySecureStore(initial)


@pytest.fixture
def harness() -> SessionHarness:
    """Session over an empty store."""
    return SessionHarness()


@pytest.fixture
def locked_harness() -> SessionHarness:
    """Session over a store holding tokens and the PIN 123456."""
    return SessionHarness(store=seeded_store(pin="123456"))
