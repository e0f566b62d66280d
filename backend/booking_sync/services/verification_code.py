"""
Verification code bridge: polls a mailbox for the portal's 6-digit login code.

The inbox is an adapter (ImapInbox in production, a fake in tests). The bridge owns the
poll loop and the deadline; the inbox answers one question per poll: newest code since X, or None.
"""
import email
import imaplib
import logging
import re
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timedelta, timezone
from email import policy
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from typing import Protocol

from booking_sync.core.constants import (
    VERIFICATION_CLOCK_SKEW_SECONDS,
    VERIFICATION_MAX_MESSAGES,
    VERIFICATION_SUBJECT_KEYWORD,
)
from booking_sync.services.remote.types import CodeResult

logger = logging.getLogger(__name__)

# Most specific first: "인증번호: 123456", then "코드 123456", then any standalone 6 digits
_CODE_PATTERNS = (
    re.compile(r"인증[^\d]{0,20}(\d{6})"),
    re.compile(r"코드[^\d]{0,20}(\d{6})"),
    re.compile(r"(?<!\d)(\d{6})(?!\d)"),
)
_TAG_RE = re.compile(r"<[^>]+>")


def extract_code(text: str) -> str | None:
    """First 6-digit verification code in a mail body (html tags ignored)."""
    plain = _TAG_RE.sub(" ", text or "")
    for pattern in _CODE_PATTERNS:
        m = pattern.search(plain)
        if m:
            return m.group(1)
    return None


class InboxError(Exception):
    """Inbox could not be read (connect/auth/protocol). The bridge counts these per poll."""


class Inbox(Protocol):
    def find_code(self, since: datetime | None, timeout: float | None = None) -> str | None:
        """Newest code mailed at or after since, or None. timeout is the caller's remaining budget in seconds."""
        ...


def _message_text(msg: EmailMessage) -> str:
    part = msg.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    try:
        return part.get_content()
    except (LookupError, ValueError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


class ImapInbox:
    """Reads the newest verification mails over IMAP (read-only select; nothing is marked seen)."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        mailbox: str = "INBOX",
        *,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self._password = password
        self.mailbox = mailbox
        self.timeout = timeout

    def find_code(self, since: datetime | None, timeout: float | None = None) -> str | None:
        since = since or (datetime.now(timezone.utc) - timedelta(minutes=10))
        # Mail Date headers drift a little from our clock
        cutoff = since - timedelta(seconds=VERIFICATION_CLOCK_SKEW_SECONDS)
        socket_timeout = self.timeout if timeout is None else max(min(self.timeout, timeout), 0.1)
        try:
            with imaplib.IMAP4_SSL(self.host, self.port, timeout=socket_timeout) as conn:
                conn.login(self.user, self._password)
                conn.select(self.mailbox, readonly=True)
                # SINCE is day-granular; the Date header filter below does the rest
                typ, data = conn.search(None, "SINCE", cutoff.strftime("%d-%b-%Y"))
                if typ != "OK":
                    raise InboxError(f"IMAP search failed: {typ}")
                ids = (data[0] or b"").split()[-VERIFICATION_MAX_MESSAGES:]
                for msg_id in reversed(ids):
                    typ, parts = conn.fetch(msg_id, "(RFC822)")
                    if typ != "OK" or not parts or not isinstance(parts[0], tuple):
                        continue
                    msg = email.message_from_bytes(parts[0][1], policy=policy.default)
                    if VERIFICATION_SUBJECT_KEYWORD not in str(msg.get("subject", "")):
                        continue
                    sent = msg.get("date")
                    if sent:
                        try:
                            sent_at = parsedate_to_datetime(str(sent))
                        except (TypeError, ValueError):
                            sent_at = None
                        if sent_at is not None and sent_at.tzinfo is not None and sent_at < cutoff:
                            continue
                    code = extract_code(_message_text(msg))
                    if code:
                        return code
        except (imaplib.IMAP4.error, OSError) as e:
            raise InboxError(str(e) or type(e).__name__) from e
        return None


class VerificationCodeBridge:
    """Poll an Inbox until a code appears, the deadline passes, or cancel is set."""

    def __init__(
        self,
        inbox: Inbox,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._inbox = inbox
        self._monotonic = monotonic
        self._sleep = sleep

    def wait_for_code(
        self,
        total_timeout_ms: int = 60_000,
        poll_interval_ms: int = 3_000,
        since: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> CodeResult:
        deadline = self._monotonic() + total_timeout_ms / 1000
        poll_seconds = max(poll_interval_ms, 1) / 1000
        attempts = failures = 0
        last_error = None
        # One worker per wait; a poll that outlives the budget is abandoned, not joined
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="verification-inbox")

        try:
            while True:
                attempts += 1
                try:
                    code = self._poll(executor, since, max(deadline - self._monotonic(), 0.0))
                except InboxError as e:
                    failures += 1
                    last_error = str(e)
                    logger.warning("Verification inbox poll %s failed: %s", attempts, e)
                else:
                    if code:
                        logger.info("Verification code found after %s poll(s)", attempts)
                        return CodeResult(ok=True, code=code)

                remaining = deadline - self._monotonic()
                if remaining <= 0:
                    break
                wait = min(poll_seconds, remaining)
                if cancel is not None:
                    if cancel.wait(wait):
                        return CodeResult(ok=False, error="verification code wait cancelled")
                else:
                    self._sleep(wait)
                if deadline - self._monotonic() <= 0:
                    break
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if failures == attempts:
            return CodeResult(ok=False, error=f"verification inbox unavailable: {last_error}")
        return CodeResult(
            ok=False,
            timed_out=True,
            error=f"no verification code within {total_timeout_ms / 1000:.0f}s",
        )

    def _poll(self, executor: ThreadPoolExecutor, since: datetime | None, budget: float) -> str | None:
        """One inbox read, bounded by budget seconds of wall time."""
        future = executor.submit(self._inbox.find_code, since, budget)
        try:
            return future.result(timeout=budget)
        except FutureTimeout:
            future.cancel()
            raise InboxError(f"inbox did not answer within {budget:.1f}s") from None
