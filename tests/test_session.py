"""
Tests for the session state machine.

Every scenario runs inside a single asyncio.run() so that the manager's
locks and background tasks live on one event loop.
"""

import asyncio

import pytest

from spendy.config import AppSettings
from spendy.models.audit import AuditEventType
from spendy.models.session import AuthState, BiometricResult
from spendy.services.errors import NetworkFailure
from spendy.services.secure_store import InMemorySecureStore
from spendy.session import InvalidTransitionError

from conftest import (
    ACCESS,
    PIN,
    PROFILE,
    REFRESH,
    SERVICE,
    FakeBiometrics,
    FlakyStore,
    SessionHarness,
    respond,
    seeded_store,
    token_pair,
)


def event_types(harness: SessionHarness) -> list[AuditEventType]:
    return [e.event_type for e in harness.audit_storage.events]


class TestColdStart:
    """Tests for the cold-start check."""

    def test_refresh_token_present_starts_locked(self, locked_harness):
        """A stored refresh token means the app opens LOCKED."""
        state = asyncio.run(locked_harness.session.initialize())

        assert state == AuthState.LOCKED
        assert locked_harness.session.state == AuthState.LOCKED
        assert locked_harness.session.is_initialized is True

    def test_no_refresh_token_starts_unauthenticated(self, harness):
        """An empty store means the app opens UNAUTHENTICATED."""
        state = asyncio.run(harness.session.initialize())

        assert state == AuthState.UNAUTHENTICATED

    def test_access_token_alone_is_not_a_session(self):
        """Only the refresh token decides whether a session exists."""
        store = InMemorySecureStore({(SERVICE, ACCESS): "access-0"})
        harness = SessionHarness(store=store)

        assert asyncio.run(harness.session.initialize()) == AuthState.UNAUTHENTICATED

    def test_cold_start_makes_no_network_call(self, locked_harness):
        """The cold-start check only inspects the secure store."""
        asyncio.run(locked_harness.session.initialize())

        assert locked_harness.transport.calls == []


class TestLogin:
    """Tests for username/password login."""

    def test_login_without_pin_goes_to_pin_setup(self, harness):
        """First login on a device asks for a PIN."""
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "secret-password")

        assert asyncio.run(scenario()) is True
        assert harness.session.state == AuthState.PIN_SETUP
        assert harness.secrets == {ACCESS: "access-1", REFRESH: "refresh-1"}

    def test_login_with_stored_pin_goes_to_authenticated(self):
        """An existing PIN skips PIN setup."""
        harness = SessionHarness(store=InMemorySecureStore({(SERVICE, PIN): "111111"}))
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "secret-password")

        assert asyncio.run(scenario()) is True
        assert harness.session.state == AuthState.AUTHENTICATED

    def test_login_does_not_fetch_profile(self, harness):
        """Plain login leaves the profile fetch to later transitions."""
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            await harness.session.login("mrossi", "secret-password")
            await harness.session.wait_until_idle()

        asyncio.run(scenario())

        assert harness.transport.calls_to("GET", "/profile") == []

    def test_login_posts_credentials(self, harness):
        """Credentials are sent as the login JSON body."""
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            await harness.session.login("  mrossi ", "secret-password")

        asyncio.run(scenario())

        call = harness.transport.calls_to("POST", "/login")[0]
        assert call["json"] == {"username": "mrossi", "password": "secret-password"}
        assert call["bearer_token"] is None

    def test_login_legacy_token_used_for_both(self, harness):
        """The legacy {token} shape stores the same token twice."""
        harness.transport.script("POST", "/login", respond(200, {"token": "legacy"}))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "secret-password")

        assert asyncio.run(scenario()) is True
        assert harness.secrets == {ACCESS: "legacy", REFRESH: "legacy"}

    def test_rejected_login_keeps_state(self, harness):
        """Bad credentials surface a message; the state does not move."""
        harness.transport.script("POST", "/login", respond(401, {"error": "bad"}))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "wrong")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.UNAUTHENTICATED
        assert harness.session.error_message is not None
        assert harness.secrets == {}
        assert AuditEventType.LOGIN_FAILED in event_types(harness)

    def test_network_failure_keeps_state(self, harness):
        """A transport failure is reported, never fatal."""
        harness.transport.script("POST", "/login", NetworkFailure("connection refused"))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "secret-password")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.UNAUTHENTICATED
        assert "connection refused" in harness.session.error_message
        assert harness.session.is_loading is False

    def test_malformed_response_is_a_failed_login(self, harness):
        """A body without tokens is a login failure."""
        harness.transport.script("POST", "/login", respond(200, {"message": "ok"}))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "secret-password")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.UNAUTHENTICATED
        assert harness.secrets == {}

    def test_empty_credentials_skip_network(self, harness):
        """Blank username or password never reaches the server."""
        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("   ", "secret-password")

        assert asyncio.run(scenario()) is False
        assert harness.transport.calls == []
        assert harness.session.error_message == "Username and password are required"

    def test_password_whitespace_reaches_server(self, harness):
        """Only the username is trimmed before posting."""
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login(" mrossi ", " secret-password ")

        assert asyncio.run(scenario()) is True
        assert harness.transport.calls[0]["json"] == {
            "username": "mrossi",
            "password": " secret-password ",
        }

    def test_attempts_are_correlated(self, harness):
        """Each login attempt has its own correlation id in the audit trail."""
        harness.transport.script(
            "POST", "/login", respond(401, {"error": "bad credentials"}), respond(200, token_pair())
        )
        storage = harness.audit_storage

        async def scenario():
            await harness.session.initialize()
            await harness.session.login("mrossi", "wrong-password")
            await harness.session.login("mrossi", "secret-password")
            failed = await storage.get_recent_events(event_type=AuditEventType.LOGIN_FAILED)
            succeeded = await storage.get_recent_events(
                event_type=AuditEventType.LOGIN_SUCCEEDED
            )
            return (
                await storage.get_events_by_correlation_id(failed[0].correlation_id),
                await storage.get_events_by_correlation_id(succeeded[0].correlation_id),
            )

        first, second = asyncio.run(scenario())

        assert [e.event_type for e in first] == [AuditEventType.LOGIN_FAILED]
        assert [e.event_type for e in second] == [AuditEventType.LOGIN_SUCCEEDED]
        assert first[0].correlation_id != second[0].correlation_id

    def test_login_while_locked_is_invalid(self, locked_harness):
        """Login is only accepted from UNAUTHENTICATED."""
        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.login("mrossi", "secret-password")

        with pytest.raises(InvalidTransitionError):
            asyncio.run(scenario())

    def test_password_never_in_audit_trail(self, harness):
        """No audit event carries the password."""
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            await harness.session.login("mrossi", "secret-password")

        asyncio.run(scenario())

        for event in harness.audit_storage.events:
            dumped = str(event.to_log_dict())
            assert "secret-password" not in dumped
            assert "access-1" not in dumped
            assert "refresh-1" not in dumped


class TestRegistration:
    """Tests for account registration."""

    def test_register_goes_to_pin_setup_and_fetches_profile(self, harness):
        """Tokens are stored, then the profile is fetched in the background."""
        harness.transport.script("POST", "/register", respond(200, token_pair()))
        harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await harness.session.initialize()
            registered = await harness.session.register(
                "mrossi", "secret-password", "mario@example.com", "Mario", "Rossi"
            )
            await harness.session.wait_until_idle()
            return registered

        assert asyncio.run(scenario()) is True
        assert harness.session.state == AuthState.PIN_SETUP
        assert harness.secrets == {ACCESS: "access-1", REFRESH: "refresh-1"}
        assert harness.session.current_user.username == "mrossi"
        assert harness.transport.calls_to("GET", "/profile")[0]["bearer_token"] == "access-1"

    def test_invalid_registration_skips_network(self, harness):
        """Validation errors block the request."""
        async def scenario():
            await harness.session.initialize()
            return await harness.session.register(
                "mrossi", "secret-password", "not-an-email", "Mario", "Rossi"
            )

        assert asyncio.run(scenario()) is False
        assert harness.transport.calls == []
        assert "email" in harness.session.error_message

    def test_registration_conflict_keeps_state(self, harness):
        """A refused registration leaves the user where they were."""
        harness.transport.script("POST", "/register", respond(409, {"error": "taken"}))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.register(
                "mrossi", "secret-password", "mario@example.com", "Mario", "Rossi"
            )

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.UNAUTHENTICATED
        assert AuditEventType.REGISTRATION_FAILED in event_types(harness)


class TestPinSetup:
    """Tests for PIN setup."""

    def _logged_in(self, harness: SessionHarness):
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def login():
            await harness.session.initialize()
            await harness.session.login("mrossi", "secret-password")

        return login

    def test_save_pin_authenticates(self, harness):
        """Saving the PIN completes the login."""
        login = self._logged_in(harness)

        async def scenario():
            await login()
            return await harness.session.save_pin("123456")

        assert asyncio.run(scenario()) is True
        assert harness.session.state == AuthState.AUTHENTICATED
        assert harness.secrets[PIN] == "123456"
        assert AuditEventType.PIN_SET in event_types(harness)

    def test_has_pin(self, harness):
        """has_pin reflects the stored PIN."""
        login = self._logged_in(harness)

        async def scenario():
            await login()
            before = await harness.session.has_pin()
            await harness.session.save_pin("123456")
            return before, await harness.session.has_pin()

        assert asyncio.run(scenario()) == (False, True)

    def test_empty_pin_is_refused(self, harness):
        """Only an empty PIN is rejected."""
        login = self._logged_in(harness)

        async def scenario():
            await login()
            return await harness.session.save_pin("")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.PIN_SETUP
        assert PIN not in harness.secrets

    def test_short_pin_is_accepted(self, harness):
        """An unusual PIN shape is only a warning."""
        login = self._logged_in(harness)

        async def scenario():
            await login()
            return await harness.session.save_pin("42")

        assert asyncio.run(scenario()) is True
        assert harness.session.state == AuthState.AUTHENTICATED

    def test_save_pin_outside_pin_setup_is_invalid(self, harness):
        """save_pin is only accepted from PIN_SETUP."""
        async def scenario():
            await harness.session.initialize()
            await harness.session.save_pin("123456")

        with pytest.raises(InvalidTransitionError):
            asyncio.run(scenario())


class TestPinUnlock:
    """Tests for unlocking with the PIN."""

    def test_matching_pin_unlocks(self, locked_harness):
        """The exact stored PIN unlocks and triggers a profile fetch."""
        locked_harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await locked_harness.session.initialize()
            unlocked = await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            return unlocked

        assert asyncio.run(scenario()) is True
        assert locked_harness.session.state == AuthState.AUTHENTICATED
        assert locked_harness.session.current_user.full_name == "Mario Rossi"

    @pytest.mark.parametrize("pin", ["000000", "12345", "1234567", "", " 123456"])
    def test_wrong_pin_stays_locked(self, locked_harness, pin):
        """Anything but the exact PIN leaves the app LOCKED."""
        async def scenario():
            await locked_harness.session.initialize()
            return await locked_harness.session.unlock(pin)

        assert asyncio.run(scenario()) is False
        assert locked_harness.session.state == AuthState.LOCKED
        assert locked_harness.transport.calls == []

    def test_retries_are_unlimited(self, locked_harness):
        """There is no lockout counter."""
        locked_harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await locked_harness.session.initialize()
            for _ in range(10):
                await locked_harness.session.unlock("999999")
            unlocked = await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            return unlocked

        assert asyncio.run(scenario()) is True

    def test_no_stored_pin_never_unlocks(self):
        """Without a PIN secret nothing matches."""
        harness = SessionHarness(store=seeded_store())

        async def scenario():
            await harness.session.initialize()
            return await harness.session.unlock("")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.LOCKED


class TestBiometricUnlock:
    """Tests for biometric unlock."""

    def test_success_unlocks(self):
        """A successful evaluation authenticates and fetches the profile."""
        harness = SessionHarness(store=seeded_store(pin="123456"))
        harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await harness.session.initialize()
            unlocked = await harness.session.unlock_with_biometrics()
            await harness.session.wait_until_idle()
            return unlocked

        assert asyncio.run(scenario()) is True
        assert harness.session.state == AuthState.AUTHENTICATED
        assert harness.session.current_user is not None
        assert harness.biometrics.reasons == [AppSettings().biometric_reason]

    @pytest.mark.parametrize("result", [
        BiometricResult.FAILURE,
        BiometricResult.CANCELLED,
        BiometricResult.UNAVAILABLE,
    ])
    def test_non_success_stays_locked_silently(self, result):
        """Failure, cancel and missing hardware are not errors."""
        harness = SessionHarness(
            store=seeded_store(pin="123456"),
            biometrics=FakeBiometrics(result=result),
        )

        async def scenario():
            await harness.session.initialize()
            return await harness.session.unlock_with_biometrics()

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.LOCKED
        assert harness.session.error_message is None
        assert harness.session.is_biometric_in_progress is False

    def test_evaluator_exception_stays_locked(self):
        """A crashing platform adapter counts as a failed attempt."""
        harness = SessionHarness(
            store=seeded_store(pin="123456"),
            biometrics=FakeBiometrics(error=RuntimeError("sensor glitch")),
        )

        async def scenario():
            await harness.session.initialize()
            return await harness.session.unlock_with_biometrics()

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.LOCKED
        assert harness.session.is_biometric_in_progress is False
        errors = [
            e for e in harness.audit_storage.events
            if e.event_type == AuditEventType.SYSTEM_ERROR
        ]
        assert [e.error_message for e in errors] == ["sensor glitch"]

    def test_duplicate_invocation_is_ignored(self):
        """A second prompt is not opened while one is in progress."""
        async def scenario():
            gate = asyncio.Event()
            biometrics = FakeBiometrics(gate=gate)
            harness = SessionHarness(store=seeded_store(pin="123456"), biometrics=biometrics)
            harness.transport.script("GET", "/profile", respond(200, PROFILE))
            await harness.session.initialize()

            first = asyncio.create_task(harness.session.unlock_with_biometrics())
            await asyncio.sleep(0)
            in_progress = harness.session.is_biometric_in_progress
            second = await harness.session.unlock_with_biometrics()

            gate.set()
            first_result = await first
            await harness.session.wait_until_idle()
            return harness, biometrics, in_progress, first_result, second

        harness, biometrics, in_progress, first_result, second = asyncio.run(scenario())

        assert in_progress is True
        assert second is False
        assert first_result is True
        assert len(biometrics.reasons) == 1
        assert harness.session.is_biometric_in_progress is False

    def test_not_locked_is_ignored(self, harness):
        """Biometrics only apply to the lock screen."""
        async def scenario():
            await harness.session.initialize()
            return await harness.session.unlock_with_biometrics()

        assert asyncio.run(scenario()) is False
        assert harness.biometrics.reasons == []


class TestLockApp:
    """Tests for locking the app."""

    def test_authenticated_app_locks(self, locked_harness):
        """Backgrounding an authenticated app locks it."""
        locked_harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            return await locked_harness.session.lock_app()

        assert asyncio.run(scenario()) == AuthState.LOCKED
        assert AuditEventType.APP_LOCKED in event_types(locked_harness)

    def test_lock_without_refresh_token_logs_out(self, locked_harness):
        """A vanished refresh token collapses the lock to UNAUTHENTICATED."""
        locked_harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            await locked_harness.store.delete(SERVICE, REFRESH)
            return await locked_harness.session.lock_app()

        assert asyncio.run(scenario()) == AuthState.UNAUTHENTICATED

    def test_lock_from_pin_setup(self, harness):
        """An unfinished PIN setup also locks."""
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            await harness.session.login("mrossi", "secret-password")
            return await harness.session.lock_app()

        assert asyncio.run(scenario()) == AuthState.LOCKED

    def test_lock_unauthenticated_is_noop(self, harness):
        """Nothing to lock without a session."""
        async def scenario():
            await harness.session.initialize()
            return await harness.session.lock_app()

        assert asyncio.run(scenario()) == AuthState.UNAUTHENTICATED
        assert AuditEventType.APP_LOCKED not in event_types(harness)


class TestLogout:
    """Tests for logout and the 401 policy."""

    def test_logout_removes_every_secret(self, locked_harness):
        """Tokens AND the PIN are deleted."""
        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.logout()

        asyncio.run(scenario())

        assert locked_harness.session.state == AuthState.UNAUTHENTICATED
        assert locked_harness.secrets == {}

    def test_logout_is_idempotent(self, locked_harness):
        """Calling logout twice, from any state, ends the same way."""
        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.logout()
            await locked_harness.session.logout()

        asyncio.run(scenario())

        assert locked_harness.session.state == AuthState.UNAUTHENTICATED
        assert locked_harness.secrets == {}

    def test_logout_clears_profile(self, locked_harness):
        """Cached profile data goes with the session."""
        locked_harness.transport.script("GET", "/profile", respond(200, PROFILE))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            await locked_harness.session.logout()

        asyncio.run(scenario())

        assert locked_harness.session.current_user is None

    def test_next_login_requires_pin_setup(self, locked_harness):
        """Because logout deletes the PIN, the next login sets a new one."""
        locked_harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.logout()
            await locked_harness.session.login("mrossi", "secret-password")

        asyncio.run(scenario())

        assert locked_harness.session.state == AuthState.PIN_SETUP

    def test_profile_401_forces_logout(self, locked_harness):
        """A 401 on the profile fetch while AUTHENTICATED ends the session."""
        locked_harness.transport.script("GET", "/profile", respond(401))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()

        asyncio.run(scenario())

        assert locked_harness.session.state == AuthState.UNAUTHENTICATED
        assert ACCESS not in locked_harness.secrets
        assert REFRESH not in locked_harness.secrets
        assert AuditEventType.SESSION_EXPIRED in event_types(locked_harness)

    def test_concurrent_401s_log_out_once(self, locked_harness):
        """Several rejected requests produce a single forced logout."""
        locked_harness.transport.script("GET", "/profile", respond(401))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await asyncio.gather(
                locked_harness.session.fetch_user_profile(),
                locked_harness.session.fetch_user_profile(),
                locked_harness.session.fetch_user_profile(),
            )
            await locked_harness.session.wait_until_idle()

        asyncio.run(scenario())

        assert locked_harness.session.state == AuthState.UNAUTHENTICATED
        assert event_types(locked_harness).count(AuditEventType.SESSION_EXPIRED) == 1


class TestStorageFailures:
    """Tests for a secure store that rejects writes."""

    def test_login_token_write_fails(self):
        """Tokens that cannot be stored make the login fail."""
        harness = SessionHarness(store=FlakyStore(failing=("save_many",)))
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            return await harness.session.login("mrossi", "secret-password")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.UNAUTHENTICATED
        assert "keychain unavailable" in harness.session.error_message
        assert harness.secrets == {}
        assert AuditEventType.LOGIN_FAILED in event_types(harness)

    def test_pin_write_fails(self):
        """A PIN that cannot be stored leaves the user in PIN setup."""
        harness = SessionHarness(store=FlakyStore(failing=("save",)))
        harness.transport.script("POST", "/login", respond(200, token_pair()))

        async def scenario():
            await harness.session.initialize()
            await harness.session.login("mrossi", "secret-password")
            return await harness.session.save_pin("123456")

        assert asyncio.run(scenario()) is False
        assert harness.session.state == AuthState.PIN_SETUP
        assert harness.session.error_message.startswith("Could not save PIN")
        assert PIN not in harness.secrets
        assert AuditEventType.STORAGE_ERROR in event_types(harness)

    def test_logout_delete_fails(self):
        """Logout still ends UNAUTHENTICATED when the delete is rejected."""
        initial = seeded_store(pin="123456").snapshot()
        harness = SessionHarness(store=FlakyStore(initial, failing=("delete_many",)))

        async def scenario():
            await harness.session.initialize()
            await harness.session.logout()

        asyncio.run(scenario())

        assert harness.session.state == AuthState.UNAUTHENTICATED
        assert harness.session.current_user is None
        types = event_types(harness)
        assert AuditEventType.STORAGE_ERROR in types
        assert types[-1] == AuditEventType.LOGOUT


class TestObservers:
    """Tests for state change notifications."""

    def test_listener_sees_each_transition(self, locked_harness):
        """Listeners get (old, new) for every real change."""
        locked_harness.transport.script("GET", "/profile", respond(200, PROFILE))
        seen = []
        locked_harness.session.subscribe(lambda old, new: seen.append((old, new)))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("000000")
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            await locked_harness.session.logout()

        asyncio.run(scenario())

        assert seen == [
            (AuthState.UNAUTHENTICATED, AuthState.LOCKED),
            (AuthState.LOCKED, AuthState.AUTHENTICATED),
            (AuthState.AUTHENTICATED, AuthState.UNAUTHENTICATED),
        ]

    def test_unsubscribe_and_failing_listener(self, locked_harness):
        """A raising listener is logged; an unsubscribed one is not called."""
        calls = []

        def broken(old, new):
            raise RuntimeError("listener bug")

        locked_harness.session.subscribe(broken)
        unsubscribe = locked_harness.session.subscribe(lambda old, new: calls.append(new))
        unsubscribe()

        async def scenario():
            state = await locked_harness.session.initialize()
            errors = await locked_harness.audit_storage.get_recent_events(
                event_type=AuditEventType.SYSTEM_ERROR
            )
            return state, errors

        state, errors = asyncio.run(scenario())

        assert state == AuthState.LOCKED
        assert calls == []
        assert [e.error_message for e in errors] == ["listener bug"]
        assert errors[0].details == {"to": "locked"}


class TestRefreshAndProfile:
    """Tests for token refresh and profile updates through the session."""

    def test_refresh_rotates_tokens(self, locked_harness):
        """A successful refresh replaces both tokens; the state is untouched."""
        locked_harness.transport.script(
            "POST", "/refresh", respond(200, token_pair("access-2", "refresh-2"))
        )

        async def scenario():
            await locked_harness.session.initialize()
            return await locked_harness.session.refresh_session()

        assert asyncio.run(scenario()) is True
        assert locked_harness.secrets[ACCESS] == "access-2"
        assert locked_harness.secrets[REFRESH] == "refresh-2"
        assert locked_harness.session.state == AuthState.LOCKED

    def test_failed_refresh_reports_error(self, locked_harness):
        """A refused refresh leaves storage and state alone."""
        locked_harness.transport.script("POST", "/refresh", respond(401))

        async def scenario():
            await locked_harness.session.initialize()
            return await locked_harness.session.refresh_session()

        assert asyncio.run(scenario()) is False
        assert locked_harness.session.error_message is not None
        assert locked_harness.secrets[REFRESH] == "refresh-0"
        assert locked_harness.session.state == AuthState.LOCKED

    def test_update_profile_refetches(self, locked_harness):
        """Updating name and surname refreshes the cached profile."""
        updated = dict(PROFILE, name="Luigi")
        locked_harness.transport.script(
            "GET", "/profile", respond(200, PROFILE), respond(200, updated)
        )
        locked_harness.transport.script("PUT", "/updateProfile", respond(200))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()
            return await locked_harness.session.update_profile("Luigi", "Rossi")

        assert asyncio.run(scenario()) is True
        put = locked_harness.transport.calls_to("PUT", "/updateProfile")[0]
        assert put["json"] == {"name": "Luigi", "surname": "Rossi"}
        assert put["bearer_token"] == "access-0"
        assert locked_harness.session.current_user.name == "Luigi"
        assert locked_harness.session.current_user.initials == "LR"

    def test_profile_server_error_keeps_session(self, locked_harness):
        """Non-401 failures are logged, not fatal."""
        locked_harness.transport.script("GET", "/profile", respond(500))

        async def scenario():
            await locked_harness.session.initialize()
            await locked_harness.session.unlock("123456")
            await locked_harness.session.wait_until_idle()

        asyncio.run(scenario())

        assert locked_harness.session.state == AuthState.AUTHENTICATED
        assert locked_harness.session.current_user is None
        assert AuditEventType.PROFILE_FETCH_FAILED in event_types(locked_harness)
