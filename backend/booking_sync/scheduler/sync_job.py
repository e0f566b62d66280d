"""
Sync triggers. Scheduled tick (every SYNC_TICK_SECONDS) and manual/cron calls end in the same
SyncReconciler.sync_all; only the gate and the auto-login policy differ.

Scheduled: operating hours + interval gate -> session (stored, or auto-login when enabled) -> sync.
Manual:    operating hours unless force -> session must already exist -> sync.
"""
import logging
import threading
from typing import Any

from booking_sync.services.runtime import SyncRuntime, get_runtime
from booking_sync.services.sync_gate import SyncTrigger

logger = logging.getLogger(__name__)

_cancel_login = threading.Event()


def cancel_pending_auto_login() -> None:
    """Stop an in-flight verification-code wait (used on shutdown)."""
    _cancel_login.set()


def _ensure_session(rt: SyncRuntime, allow_auto_login: bool) -> dict[str, Any] | None:
    """None when a session is ready, else the skip payload."""
    if rt.sessions.ensure_valid():
        return None
    credentials = rt.configured_credentials()
    if not allow_auto_login or credentials is None:
        logger.info("Remote sync skipped: no active session (login required)")
        return {"success": False, "skipped": True, "needs_login": True, "reason": "no active session"}
    logger.info("No active remote session; starting auto-login for %s", credentials.username)
    auth = rt.sessions.auto_login(credentials, cancel=_cancel_login)
    if not auth.ok:
        logger.warning("Auto-login failed (%s): %s", auth.kind.value if auth.kind else "?", auth.error)
        return {
            "success": False,
            "skipped": True,
            "needs_login": True,
            "reason": auth.error,
            "kind": auth.kind.value if auth.kind else None,
        }
    return None


def run_sync(
    trigger: SyncTrigger,
    *,
    force: bool = False,
    max_pages: int | None = None,
    runtime: SyncRuntime | None = None,
) -> dict[str, Any]:
    rt = runtime or get_runtime()
    decision = rt.gate.authorize(trigger, force=force)
    if not decision.allowed:
        logger.debug("Remote sync (%s) skipped: %s", trigger.value, decision.reason)
        return {"success": False, "skipped": True, "reason": decision.reason}

    allow_auto_login = trigger is SyncTrigger.SCHEDULED and rt.settings.sync_auto_login
    skipped = _ensure_session(rt, allow_auto_login)
    if skipped is not None:
        return skipped

    result = rt.reconciler.sync_all(max_pages=max_pages)
    return result.to_dict()


def run_sync_job() -> None:
    """Scheduler entry point. Exceptions are logged so the job keeps its schedule."""
    try:
        run_sync(SyncTrigger.SCHEDULED)
    except Exception as e:
        logger.exception("Remote sync job failed: %s", e)
