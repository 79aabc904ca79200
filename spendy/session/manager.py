"""
Session State Machine

Owns the single authoritative AuthState and moves it in response to cold
start, login, registration, PIN setup/unlock, biometric unlock, lock,
token refresh and logout.

    cold start ──► LOCKED (refresh token stored) | UNAUTHENTICATED

    UNAUTHENTICATED ──login──► AUTHENTICATED (PIN stored) | PIN_SETUP
    UNAUTHENTICATED ──register──► PIN_SETUP
    PIN_SETUP ──save_pin──► AUTHENTICATED
    LOCKED ──unlock / biometrics──► AUTHENTICATED (failure stays LOCKED)
    AUTHENTICATED | LOCKED | PIN_SETUP ──lock_app──► LOCKED | UNAUTHENTICATED
    any ──logout / 401──► UNAUTHENTICATED (tokens AND PIN deleted)

DESIGN DECISIONS:
1. No module-level singleton. Build one SessionManager, then
   `await initialize()` before use. The application owns the instance.
2. One asyncio.Lock owns every state mutation. Network calls run on
   worker threads outside the lock; their results re-enter through it.
   A reader never observes a half-done transition.
3. LOCKED and AUTHENTICATED are only entered while a refresh token is
   stored. The check is made in one place (`_set_state`), so no
   transition can bypass it.
4. Login/registration failures never change the state; they leave a
   message in `error_message`.
5. PIN mismatch and failed biometrics are local: the state stays LOCKED
   and the caller just lets the user retry.
"""

import asyncio
import hmac
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from spendy.audit import AuditLogger, create_correlation_id
from spendy.config import AppSettings, get_settings
from spendy.models.session import (
    AuthState,
    BiometricResult,
    LoginRequest,
    ProfileUpdate,
    RegistrationRequest,
    UserProfile,
)
from spendy.services.biometrics import (
    BiometricAuthenticatorInterface,
    UnavailableBiometrics,
)
from spendy.services.errors import (
    AuthRejected,
    MalformedResponse,
    NetworkFailure,
    SessionExpired,
)
from spendy.services.identity import (
    PROFILE_PATH,
    UPDATE_PROFILE_PATH,
    IdentityClient,
    decode_profile,
)
from spendy.services.secure_store import StorageFailure
from spendy.services.transport import HttpTransport
from spendy.session.authorized import AuthorizedRequester
from spendy.session.tokens import TokenLifecycleManager
from spendy.validation import CredentialValidator


logger = structlog.get_logger(__name__)

StateListener = Callable[[AuthState, AuthState], None]

# Failures reported as a message without changing state
RECOVERABLE_ERRORS = (NetworkFailure, AuthRejected, MalformedResponse, StorageFailure)


class InvalidTransitionError(Exception):
    """An operation was invoked from a state that does not accept it."""

    def __init__(self, operation: str, state: AuthState):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while {state.value}")


class SessionManager:
    """
    The single owner of the session lifecycle.

    Observable surface for the UI:
        state, is_loading, error_message, current_user,
        is_biometric_in_progress, subscribe(listener)
    """

    def __init__(
        self,
        tokens: TokenLifecycleManager,
        identity: IdentityClient,
        identity_transport: HttpTransport,
        biometrics: Optional[BiometricAuthenticatorInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[CredentialValidator] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._tokens = tokens
        self._identity = identity
        self._biometrics = biometrics or UnavailableBiometrics()
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._validator = validator or CredentialValidator(self._settings)
        self._requester = self.authorized(identity_transport)

        self._lock = asyncio.Lock()
        self._state = AuthState.UNAUTHENTICATED
        self._initialized = False
        self._is_loading = False
        self._error_message: Optional[str] = None
        self._current_user: Optional[UserProfile] = None
        self._biometric_in_progress = False
        self._listeners: list[StateListener] = []
        self._background: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def current_user(self) -> Optional[UserProfile]:
        return self._current_user

    @property
    def is_biometric_in_progress(self) -> bool:
        return self._biometric_in_progress

    @property
    def tokens(self) -> TokenLifecycleManager:
        return self._tokens

    @property
    def requester(self) -> AuthorizedRequester:
        """Requester for bearer calls on the identity endpoint."""
        return self._requester

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a callback invoked with (old_state, new_state) on every
        state change. Returns a function that unsubscribes it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def authorized(self, transport: HttpTransport) -> AuthorizedRequester:
        """
        Requester for bearer-authenticated calls on `transport`.

        A 401 on any of its requests logs this session out.
        """
        return AuthorizedRequester(transport, self._tokens, self.handle_session_expired)

    # -------------------------------------------------------------------------
    # Internals (call with self._lock held)
    # -------------------------------------------------------------------------

    async def _set_state(self, target: AuthState) -> AuthState:
        if target.requires_session and not await self._tokens.has_session():
            logger.info("session_missing_refresh_token", requested=target.value)
            target = AuthState.UNAUTHENTICATED

        old = self._state
        if target == old:
            return old

        self._state = target
        for listener in list(self._listeners):
            try:
                listener(old, target)
            except Exception as e:
                logger.exception("state_listener_failed")
                await self._audit_logger.log_error(
                    "state_listener_failed", str(e), {"to": target.value}
                )
        await self._audit_logger.log_state_changed(old, target)
        return target

    def _require_state(self, operation: str, *allowed: AuthState) -> None:
        if self._state not in allowed:
            raise InvalidTransitionError(operation, self._state)

    async def _read_pin(self) -> Optional[str]:
        settings = self._tokens.settings
        try:
            return await self._tokens.store.read(settings.service, settings.pin_account)
        except StorageFailure as e:
            logger.warning("pin_read_failed", error=str(e))
            await self._audit_logger.log_storage_error("read", str(e))
            return None

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _schedule_profile_refresh(self) -> None:
        self._schedule(self.fetch_user_profile())

    async def wait_until_idle(self) -> None:
        """Wait for every background task (profile refreshes) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))

    # -------------------------------------------------------------------------
    # Cold start
    # -------------------------------------------------------------------------

    async def initialize(self) -> AuthState:
        """
        Cold-start check. No network call is made.

        Returns:
            LOCKED if a refresh token is stored, UNAUTHENTICATED otherwise
        """
        async with self._lock:
            has_session = await self._tokens.has_session()
            target = AuthState.LOCKED if has_session else AuthState.UNAUTHENTICATED
            state = await self._set_state(target)
            self._initialized = True

        await self._audit_logger.log_cold_start(state)
        return state

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    async def login(self, username: str, password: str) -> bool:
        """
        Log in with username and password.

        On success the token pair is stored BEFORE the state changes:
        AUTHENTICATED if a PIN is already stored, PIN_SETUP otherwise.
        On failure the state is unchanged and `error_message` is set.
        """
        async with self._lock:
            self._require_state("login", AuthState.UNAUTHENTICATED)

        correlation_id = create_correlation_id()
        self._error_message = None

        try:
            request = LoginRequest(username=username, password=password)
        except ValidationError:
            self._error_message = "Username and password are required"
            await self._audit_logger.log_login(
                username, False, self._state, self._error_message, correlation_id
            )
            return False

        self._is_loading = True
        try:
            pair = await asyncio.to_thread(self._identity.login, request)
            await self._tokens.save_pair(pair)
        except RECOVERABLE_ERRORS as e:
            self._error_message = str(e)
            await self._audit_logger.log_login(
                request.username, False, self._state, str(e), correlation_id
            )
            return False
        finally:
            self._is_loading = False

        async with self._lock:
            has_pin = await self._read_pin() is not None
            target = AuthState.AUTHENTICATED if has_pin else AuthState.PIN_SETUP
            state = await self._set_state(target)

        await self._audit_logger.log_login(
            request.username, True, state, correlation_id=correlation_id
        )
        return True

    async def register(
        self,
        username: str,
        password: str,
        email: str,
        name: str,
        surname: str,
    ) -> bool:
        """
        Create an account, store its tokens and move to PIN_SETUP.

        The profile is fetched in the background once the tokens exist.
        """
        async with self._lock:
            self._require_state("register", AuthState.UNAUTHENTICATED)

        correlation_id = create_correlation_id()
        self._error_message = None

        request = RegistrationRequest(
            username=username,
            password=password,
            email=email,
            name=name,
            surname=surname,
        )
        validation = self._validator.validate_registration(request)
        if validation.has_errors:
            self._error_message = validation.first_error
            await self._audit_logger.log_registration(
                request.username, False, self._error_message, correlation_id
            )
            return False

        self._is_loading = True
        try:
            pair = await asyncio.to_thread(self._identity.register, request)
            await self._tokens.save_pair(pair)
        except RECOVERABLE_ERRORS as e:
            self._error_message = str(e)
            await self._audit_logger.log_registration(
                request.username, False, str(e), correlation_id
            )
            return False
        finally:
            self._is_loading = False

        async with self._lock:
            await self._set_state(AuthState.PIN_SETUP)

        await self._audit_logger.log_registration(
            request.username, True, correlation_id=correlation_id
        )
        self._schedule_profile_refresh()
        return True

    async def save_pin(self, pin: str) -> bool:
        """
        Store the PIN chosen during PIN_SETUP and enter AUTHENTICATED.

        Only an empty PIN is refused.
        """
        validation = self._validator.validate_pin(pin)
        for warning in validation.warnings:
            logger.info("pin_warning", warning=warning)

        async with self._lock:
            self._require_state("save_pin", AuthState.PIN_SETUP)

            if validation.has_errors:
                self._error_message = validation.first_error
                return False

            settings = self._tokens.settings
            try:
                await self._tokens.store.save(pin, settings.service, settings.pin_account)
            except StorageFailure as e:
                self._error_message = f"Could not save PIN: {e}"
                await self._audit_logger.log_storage_error("write", str(e))
                return False

            self._error_message = None
            state = await self._set_state(AuthState.AUTHENTICATED)

        if state == AuthState.AUTHENTICATED:
            await self._audit_logger.log_pin_set()
        return state == AuthState.AUTHENTICATED

    async def has_pin(self) -> bool:
        return await self._read_pin() is not None

    # -------------------------------------------------------------------------
    # Re-authentication
    # -------------------------------------------------------------------------

    async def unlock(self, pin: str) -> bool:
        """
        Unlock with the PIN.

        Returns:
            True if the PIN matched exactly and the session is now
            AUTHENTICATED. False means "shake and clear the input"; the
            state stays LOCKED and there is no lockout counter.
        """
        async with self._lock:
            self._require_state("unlock", AuthState.LOCKED)

            stored = await self._read_pin()
            matched = stored is not None and hmac.compare_digest(
                pin.encode("utf-8"), stored.encode("utf-8")
            )
            if matched:
                await self._set_state(AuthState.AUTHENTICATED)
            unlocked = self._state == AuthState.AUTHENTICATED
            state = self._state

        await self._audit_logger.log_unlock(unlocked, "pin", state)
        if unlocked:
            self._schedule_profile_refresh()
        return unlocked

    async def unlock_with_biometrics(self) -> bool:
        """
        Unlock with the platform biometric prompt.

        Ignored (returns False) while another evaluation is in progress or
        when the session is not LOCKED. Failure, cancellation and missing
        hardware all leave the state LOCKED; none of them is an error.
        """
        if self._biometric_in_progress:
            return False
        self._biometric_in_progress = True

        try:
            if self._state != AuthState.LOCKED:
                return False
            try:
                result = await self._biometrics.evaluate(self._settings.biometric_reason)
            except Exception as e:
                logger.warning("biometric_evaluation_error", error=str(e))
                await self._audit_logger.log_error("biometric_evaluation_error", str(e))
                result = BiometricResult.FAILURE
        finally:
            self._biometric_in_progress = False

        unlocked = False
        async with self._lock:
            if result == BiometricResult.SUCCESS and self._state == AuthState.LOCKED:
                await self._set_state(AuthState.AUTHENTICATED)
                unlocked = self._state == AuthState.AUTHENTICATED
            state = self._state

        if result != BiometricResult.SUCCESS:
            logger.info("biometric_unlock_failed", result=result.value)
        await self._audit_logger.log_unlock(unlocked, "biometrics", state)
        if unlocked:
            self._schedule_profile_refresh()
        return unlocked

    async def lock_app(self) -> AuthState:
        """
        Lock the app (e.g. when it goes to the background).

        LOCKED if a refresh token is still stored, UNAUTHENTICATED
        otherwise. A no-op when already UNAUTHENTICATED.
        """
        async with self._lock:
            if self._state == AuthState.UNAUTHENTICATED:
                return self._state
            state = await self._set_state(AuthState.LOCKED)

        await self._audit_logger.log_app_locked(state)
        return state

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def logout(self) -> None:
        """
        Delete tokens AND the PIN, drop the profile, go UNAUTHENTICATED.

        Idempotent. Deleting the PIN is what forces PIN setup on the next
        login.
        """
        await self._teardown(forced=False)

    async def handle_session_expired(self) -> None:
        """
        The 401 policy: an authenticated request was rejected.

        Same effect as logout(). Concurrent 401s produce a single
        transition; later calls find the session already torn down.
        """
        await self._teardown(forced=True)

    async def _teardown(self, forced: bool) -> None:
        async with self._lock:
            was = self._state
            try:
                await self._tokens.clear_tokens(include_pin=True)
            except StorageFailure as e:
                logger.error("logout_storage_failed", error=str(e))
                await self._audit_logger.log_storage_error("delete", str(e))
            self._current_user = None
            await self._set_state(AuthState.UNAUTHENTICATED)

        if forced and was == AuthState.UNAUTHENTICATED:
            return
        await self._audit_logger.log_logout(forced)

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    async def refresh_session(self) -> bool:
        """
        Rotate the token pair. The state never changes here; a failure
        leaves a message and the caller decides whether to log out.
        """
        refreshed = await self._tokens.refresh_session()
        if not refreshed:
            self._error_message = self._tokens.last_refresh_error or "Session refresh failed"
        return refreshed

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def fetch_user_profile(self) -> Optional[UserProfile]:
        """
        Fetch the profile with the current access token.

        A 401 logs the session out (via the requester). Other failures
        are logged and leave the previous profile in place.
        """
        try:
            response = await self._requester.request("GET", PROFILE_PATH)
            if response.status_code != 200:
                raise NetworkFailure(
                    f"Profile fetch failed: {response.status_code}",
                    status_code=response.status_code,
                )
            profile = decode_profile(response)
        except SessionExpired:
            logger.info("profile_fetch_session_expired")
            return None
        except (NetworkFailure, MalformedResponse) as e:
            await self._audit_logger.log_profile_fetch_failed(str(e))
            return None

        async with self._lock:
            if self._state == AuthState.UNAUTHENTICATED:
                return None
            self._current_user = profile

        await self._audit_logger.log_profile_fetched(profile.username)
        return profile

    async def update_profile(self, name: str, surname: str) -> bool:
        """Update name and surname, then refetch the profile."""
        try:
            update = ProfileUpdate(name=name, surname=surname)
        except ValidationError:
            self._error_message = "Name and surname are too long"
            return False

        try:
            response = await self._requester.request(
                "PUT", UPDATE_PROFILE_PATH, json=update.to_payload()
            )
        except SessionExpired:
            return False
        except NetworkFailure as e:
            self._error_message = str(e)
            return False

        if response.status_code != 200:
            self._error_message = f"Profile update failed: {response.status_code}"
            return False

        await self._audit_logger.log_profile_updated()
        await self.fetch_user_profile()
        return True
