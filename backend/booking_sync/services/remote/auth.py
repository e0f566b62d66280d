"""
Remote portal session and the 2-factor login flow.

Login is three requests against the portal, split across two calls so a person can type the code:
  1. request_verification_code: GET login page (seed cookie), POST credential check -> code mailed
  2. confirm_verification_code: POST code check, POST login form, follow <= 2 redirects -> session cookie

State lives in one place (SessionManager) and moves only through _fire(event):

  UNAUTHENTICATED --code_requested--> CODE_REQUESTED --code_accepted--> CODE_CONFIRMED
  CODE_CONFIRMED --login_completed--> AUTHENTICATED --expired/cleared--> UNAUTHENTICATED

A confirm without a live pending request is rejected before any network call.
Network calls never run under the state lock; _login_lock serializes whole login attempts.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import httpx

from booking_sync.core.constants import (
    CODE_CONFIRM_PATH,
    CREDENTIAL_CHECK_PATH,
    LOGIN_ACTION_PATH,
    LOGIN_PAGE_MARKERS,
    LOGIN_PAGE_TITLE_KEYWORDS,
    LOGIN_PATH,
    MAX_LOGIN_REDIRECTS,
    MSG_LOGIN_CANCELLED,
    MSG_NO_PENDING_LOGIN,
    USER_AGENT,
)
from booking_sync.core.errors import AuthErrorKind
from booking_sync.services.remote.client import is_login_location
from booking_sync.services.remote.cookies import merge_set_cookies
from booking_sync.services.remote.parser import looks_like_login_page
from booking_sync.services.remote.types import AuthResult, Credentials, PendingAuthentication, RemoteSession

if TYPE_CHECKING:
    from booking_sync.services.session_store import SessionStore
    from booking_sync.services.verification_code import VerificationCodeBridge

logger = logging.getLogger(__name__)

_SUCCESS_VALUES = {"success", "y", "ok", "true", "0000"}


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CODE_REQUESTED = "code_requested"
    CODE_CONFIRMED = "code_confirmed"
    AUTHENTICATED = "authenticated"


class AuthEvent(str, Enum):
    CODE_REQUESTED = "code_requested"
    CODE_ACCEPTED = "code_accepted"
    LOGIN_COMPLETED = "login_completed"
    LOGIN_FAILED = "login_failed"
    SESSION_LOADED = "session_loaded"
    EXPIRED = "expired"
    CLEARED = "cleared"


_S = AuthState
_E = AuthEvent
TRANSITIONS: dict[tuple[AuthState, AuthEvent], AuthState] = {
    (_S.UNAUTHENTICATED, _E.CODE_REQUESTED): _S.CODE_REQUESTED,
    (_S.CODE_REQUESTED, _E.CODE_REQUESTED): _S.CODE_REQUESTED,  # re-request replaces the pending login
    (_S.AUTHENTICATED, _E.CODE_REQUESTED): _S.CODE_REQUESTED,
    (_S.CODE_REQUESTED, _E.CODE_ACCEPTED): _S.CODE_CONFIRMED,
    (_S.CODE_CONFIRMED, _E.LOGIN_COMPLETED): _S.AUTHENTICATED,
    (_S.CODE_CONFIRMED, _E.LOGIN_FAILED): _S.UNAUTHENTICATED,
    (_S.CODE_REQUESTED, _E.LOGIN_FAILED): _S.UNAUTHENTICATED,
    (_S.UNAUTHENTICATED, _E.SESSION_LOADED): _S.AUTHENTICATED,
    (_S.AUTHENTICATED, _E.SESSION_LOADED): _S.AUTHENTICATED,
    (_S.AUTHENTICATED, _E.EXPIRED): _S.UNAUTHENTICATED,
    (_S.UNAUTHENTICATED, _E.CLEARED): _S.UNAUTHENTICATED,
    (_S.CODE_REQUESTED, _E.CLEARED): _S.UNAUTHENTICATED,
    (_S.CODE_CONFIRMED, _E.CLEARED): _S.UNAUTHENTICATED,
    (_S.AUTHENTICATED, _E.CLEARED): _S.UNAUTHENTICATED,
}


class InvalidTransition(RuntimeError):
    pass


def _json(r: httpx.Response) -> dict[str, Any] | None:
    try:
        data = r.json() if r.content else None
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _is_success(payload: dict[str, Any]) -> bool:
    """Portal AJAX answers use either a boolean `success` or a `result` code string."""
    for key in ("success", "result", "resultCode"):
        value = payload.get(key)
        if isinstance(value, bool):
            return value
        if value is not None:
            return str(value).strip().lower() in _SUCCESS_VALUES
    return False


def _message(payload: dict[str, Any]) -> str:
    return str(payload.get("message") or payload.get("msg") or "").strip()


def _login_cancelled(pending: PendingAuthentication) -> AuthResult:
    logger.info("Remote login for %s cancelled while in flight", pending.username)
    return AuthResult.failure(AuthErrorKind.CANCELLED, MSG_LOGIN_CANCELLED)


class SessionManager:
    """Owns the in-process RemoteSession and the pending login. All state reads/writes hold self._lock."""

    def __init__(
        self,
        store: SessionStore,
        base_url: str,
        *,
        code_bridge: VerificationCodeBridge | None = None,
        session_lifetime: timedelta = timedelta(minutes=30),
        pending_ttl: timedelta = timedelta(minutes=10),
        timeout: float = 20.0,
        code_request_delay: float = 2.0,
        code_timeout_seconds: float = 60,
        code_poll_seconds: float = 3,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._base_url = base_url.rstrip("/")
        self._code_bridge = code_bridge
        self._lifetime = session_lifetime
        self._pending_ttl = pending_ttl
        self._timeout = timeout
        self._code_request_delay = code_request_delay
        self._code_timeout_seconds = code_timeout_seconds
        self._code_poll_seconds = code_poll_seconds
        self._transport = transport
        self._now = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep

        self._lock = threading.RLock()
        self._login_lock = threading.Lock()
        self._state = AuthState.UNAUTHENTICATED
        self._session: RemoteSession | None = None
        self._pending: PendingAuthentication | None = None

    # --- state machine ---

    def _fire(self, event: AuthEvent) -> AuthState:
        """Apply event to the current state. Caller holds self._lock."""
        key = (self._state, event)
        if key not in TRANSITIONS:
            raise InvalidTransition(f"{event.value} not allowed in state {self._state.value}")
        previous, self._state = self._state, TRANSITIONS[key]
        if previous != self._state:
            logger.debug("Remote auth %s -> %s (%s)", previous.value, self._state.value, event.value)
        return self._state

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    def _live_pending(self) -> PendingAuthentication | None:
        if self._pending is None:
            return None
        if self._now() - self._pending.created_at > self._pending_ttl:
            logger.info("Pending remote login for %s expired", self._pending.username)
            self._pending = None
            self._fire(AuthEvent.LOGIN_FAILED)
            return None
        return self._pending

    def _abandon(self, pending: PendingAuthentication) -> None:
        with self._lock:
            if self._pending is pending:
                self._pending = None
            if self._state in (AuthState.CODE_REQUESTED, AuthState.CODE_CONFIRMED):
                self._fire(AuthEvent.LOGIN_FAILED)

    def _http(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            follow_redirects=False,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
        )

    # --- login ---

    def request_verification_code(self, credentials: Credentials) -> AuthResult:
        """Submit credentials; on success the portal mails a code and a pending login is recorded."""
        with self._login_lock:
            jar = ""
            try:
                with self._http() as c:
                    r = c.get(LOGIN_PATH)
                    jar = merge_set_cookies(jar, r)
                    r = c.post(
                        CREDENTIAL_CHECK_PATH,
                        data={"empId": credentials.username, "password": credentials.secret},
                        headers={"Cookie": jar, "X-Requested-With": "XMLHttpRequest"},
                    )
                    jar = merge_set_cookies(jar, r)
            except httpx.HTTPError as e:
                logger.warning("Remote credential check failed: %s", e)
                return AuthResult.failure(AuthErrorKind.NETWORK, f"credential check failed: {e}")

            if not r.is_success:
                return AuthResult.failure(AuthErrorKind.PROTOCOL, f"credential check returned {r.status_code}")
            payload = _json(r)
            if payload is None:
                return AuthResult.failure(AuthErrorKind.PROTOCOL, "credential check returned no JSON")
            if not _is_success(payload):
                message = _message(payload) or "credentials rejected"
                logger.info("Remote rejected credentials for %s: %s", credentials.username, message)
                return AuthResult.failure(AuthErrorKind.REJECTED, message)

            email = str(payload.get("email") or payload.get("emgEmail") or "").strip()
            pending = PendingAuthentication(
                username=credentials.username,
                secret=credentials.secret,
                verification_email=email,
                cookie_jar=jar,
                created_at=self._now(),
            )
            with self._lock:
                if self._state is AuthState.CODE_CONFIRMED:
                    self._fire(AuthEvent.LOGIN_FAILED)
                self._pending = pending
                self._fire(AuthEvent.CODE_REQUESTED)
            logger.info("Verification code requested for %s (mailed to %s)", credentials.username, email or "?")
            return AuthResult(ok=True, verification_email=email)

    def confirm_verification_code(self, code: str) -> AuthResult:
        """Confirm the mailed code and complete the login form. Requires a live pending login."""
        with self._login_lock:
            with self._lock:
                pending = self._live_pending()
            if pending is None:
                return AuthResult.failure(AuthErrorKind.NO_PENDING, MSG_NO_PENDING_LOGIN)

            jar = pending.cookie_jar
            try:
                with self._http() as c:
                    r = c.post(
                        CODE_CONFIRM_PATH,
                        data={"email": pending.verification_email, "inputCode": code.strip(), "chk": "login"},
                        headers={"Cookie": jar, "X-Requested-With": "XMLHttpRequest"},
                    )
                    jar = merge_set_cookies(jar, r)
                    payload = _json(r) if r.is_success else None
                    if payload is None:
                        return AuthResult.failure(AuthErrorKind.PROTOCOL, "code check returned no JSON")
                    if not _is_success(payload):
                        # pending login stays live so the person can retype the code
                        return AuthResult.failure(
                            AuthErrorKind.CODE_REJECTED, _message(payload) or "verification code rejected"
                        )
                    with self._lock:
                        if self._pending is not pending or self._state is not AuthState.CODE_REQUESTED:
                            return _login_cancelled(pending)
                        self._fire(AuthEvent.CODE_ACCEPTED)

                    r = c.post(
                        LOGIN_ACTION_PATH,
                        data={
                            "emgEmail": pending.verification_email,
                            "userId": pending.username,
                            "password": pending.secret,
                            "saveId": "N",
                        },
                        headers={"Cookie": jar},
                    )
                    jar = merge_set_cookies(jar, r)
                    outcome = self._follow_login_redirects(c, r, jar)
            except httpx.HTTPError as e:
                logger.warning("Remote login failed: %s", e)
                self._abandon(pending)
                return AuthResult.failure(AuthErrorKind.NETWORK, f"login failed: {e}")

            if isinstance(outcome, AuthResult):
                self._abandon(pending)
                return outcome
            jar = outcome

            session = RemoteSession(cookie_jar=jar, expires_at=self._now() + self._lifetime, is_logged_in=True)
            with self._lock:
                # a logout while the form was in flight wins; the new cookies are dropped
                if self._state is not AuthState.CODE_CONFIRMED:
                    return _login_cancelled(pending)
                self._session = session
                self._pending = None
                self._fire(AuthEvent.LOGIN_COMPLETED)
            self._store.save(session)
            logger.info("Remote login complete for %s, session expires %s", pending.username, session.expires_at.isoformat())
            return AuthResult(ok=True, session=session)

    def _follow_login_redirects(self, c: httpx.Client, r: httpx.Response, jar: str) -> str | AuthResult:
        """Walk the login form's redirect chain. Returns the final cookie jar, or a failed AuthResult."""
        hops = 0
        while r.is_redirect and hops < MAX_LOGIN_REDIRECTS:
            location = r.headers.get("location", "")
            if is_login_location(location):
                return AuthResult.failure(AuthErrorKind.REJECTED, "login form redirected back to the login page")
            r = c.get(urljoin(str(r.url), location), headers={"Cookie": jar})
            jar = merge_set_cookies(jar, r)
            hops += 1
        if r.is_redirect:
            if is_login_location(r.headers.get("location", "")):
                return AuthResult.failure(AuthErrorKind.REJECTED, "login form redirected back to the login page")
        elif not r.is_success:
            return AuthResult.failure(AuthErrorKind.PROTOCOL, f"login form returned {r.status_code}")
        elif looks_like_login_page(r.text, LOGIN_PAGE_MARKERS, LOGIN_PAGE_TITLE_KEYWORDS):
            return AuthResult.failure(AuthErrorKind.REJECTED, "login form answered with the login page")
        if not jar:
            return AuthResult.failure(AuthErrorKind.PROTOCOL, "login produced no session cookie")
        return jar

    def auto_login(self, credentials: Credentials, cancel: threading.Event | None = None) -> AuthResult:
        """Full unattended login: request a code, read it from the inbox, confirm it."""
        if self._code_bridge is None:
            return AuthResult.failure(AuthErrorKind.INBOX_UNAVAILABLE, "no verification inbox configured")
        requested_at = self._now()
        result = self.request_verification_code(credentials)
        if not result.ok:
            return result

        # the portal needs a moment before the mail lands
        if self._code_request_delay > 0:
            self._sleep(self._code_request_delay)

        code = self._code_bridge.wait_for_code(
            int(self._code_timeout_seconds * 1000),
            int(self._code_poll_seconds * 1000),
            since=requested_at,
            cancel=cancel,
        )
        if not code.ok:
            if code.timed_out:
                return AuthResult.failure(AuthErrorKind.CODE_TIMEOUT, code.error or "verification code timed out")
            return AuthResult.failure(AuthErrorKind.INBOX_UNAVAILABLE, code.error or "verification inbox unavailable")
        return self.confirm_verification_code(code.code)

    # --- session access ---

    def is_valid(self) -> bool:
        with self._lock:
            s = self._session
            return s is not None and s.is_logged_in and self._now() < s.expires_at

    def ensure_valid(self) -> bool:
        """is_valid(), else one attempt to adopt the persisted session."""
        if self.is_valid():
            return True
        with self._lock:
            loaded = self._store.load()
            if loaded is None or self._now() >= loaded.expires_at:
                return False
            self._session = loaded
            if self._state in (AuthState.UNAUTHENTICATED, AuthState.AUTHENTICATED):
                self._fire(AuthEvent.SESSION_LOADED)
            return True

    def cookie_jar(self) -> str:
        with self._lock:
            return self._session.cookie_jar if self._session is not None else ""

    def absorb_cookies(self, response: httpx.Response) -> None:
        """Pick up cookies the portal rotates on ordinary page loads."""
        if not response.headers.get_list("set-cookie"):
            return
        with self._lock:
            if self._session is not None:
                self._session.cookie_jar = merge_set_cookies(self._session.cookie_jar, response)

    def mark_expired(self) -> None:
        """Portal said the session is gone: invalidate memory and the stored copy."""
        with self._lock:
            if self._session is not None:
                self._session.is_logged_in = False
            if self._state is AuthState.AUTHENTICATED:
                self._fire(AuthEvent.EXPIRED)
            self._store.clear()
        logger.info("Remote session marked expired")

    def extend(self, record_keepalive: bool = False) -> datetime | None:
        """Push expiry to now + lifetime (never backwards), in memory and in the store."""
        with self._lock:
            s = self._session
            if s is None or not s.is_logged_in:
                return None
            now = self._now()
            target = now + self._lifetime
            if target > s.expires_at:
                s.expires_at = target
            saved = self._store.extend_expiry(s.expires_at, keepalive_at=now if record_keepalive else None)
            if not saved:
                # row missing (e.g. cleared by hand); write the whole session back
                self._store.save(s)
            return s.expires_at

    def touch(self) -> datetime | None:
        """Sync counts as activity: same as a keep-alive without the keep-alive timestamp."""
        return self.extend(record_keepalive=False)

    def clear(self) -> None:
        with self._lock:
            self._session = None
            self._pending = None
            self._fire(AuthEvent.CLEARED)
            self._store.clear()
        logger.info("Remote session cleared")

    def status(self) -> dict:
        with self._lock:
            s = self._session
            pending = self._pending
            return {
                "state": self._state.value,
                "is_logged_in": self.is_valid(),
                "expires_at": s.expires_at.isoformat() if s is not None else None,
                "pending_verification_email": pending.verification_email if pending is not None else None,
            }
