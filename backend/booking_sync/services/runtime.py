"""
Process-wide wiring: one SessionStore, SessionManager, RemoteClient, SyncGate and SyncReconciler.

Built lazily from settings on first use (scheduler jobs and routes share it).
Tests call build_runtime directly with their own session factory, transport and clock.
"""
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
from sqlalchemy.orm import sessionmaker

from booking_sync.config import Settings, settings
from booking_sync.services import notifiers
from booking_sync.services.remote.auth import SessionManager
from booking_sync.services.remote.client import RemoteClient
from booking_sync.services.remote.types import Credentials
from booking_sync.services.session_store import SessionStore
from booking_sync.services.sync_gate import SyncGate
from booking_sync.services.sync_service import SyncReconciler
from booking_sync.services.verification_code import ImapInbox, Inbox, VerificationCodeBridge

logger = logging.getLogger(__name__)


@dataclass
class SyncRuntime:
    settings: Settings
    store: SessionStore
    sessions: SessionManager
    client: RemoteClient
    gate: SyncGate
    reconciler: SyncReconciler
    code_bridge: VerificationCodeBridge | None = None

    def configured_credentials(self) -> Credentials | None:
        if not self.settings.has_remote_credentials():
            return None
        return Credentials(self.settings.remote_username, self.settings.remote_password)


def build_runtime(
    cfg: Settings,
    session_factory: sessionmaker,
    *,
    transport: httpx.BaseTransport | None = None,
    inbox: Inbox | None = None,
    clock: Callable[[], datetime] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncRuntime:
    store = SessionStore(session_factory, clock=clock)

    if inbox is None and cfg.has_inbox():
        inbox = ImapInbox(cfg.imap_host, cfg.imap_port, cfg.imap_user, cfg.imap_password, cfg.imap_mailbox)
    code_bridge = VerificationCodeBridge(inbox, sleep=sleep) if inbox is not None else None

    sessions = SessionManager(
        store,
        cfg.remote_base_url,
        code_bridge=code_bridge,
        session_lifetime=timedelta(minutes=cfg.remote_session_lifetime_minutes),
        pending_ttl=timedelta(minutes=cfg.pending_login_ttl_minutes),
        timeout=cfg.remote_request_timeout_seconds,
        code_request_delay=cfg.code_request_delay_seconds,
        code_timeout_seconds=cfg.verification_code_timeout_seconds,
        code_poll_seconds=cfg.verification_code_poll_seconds,
        transport=transport,
        clock=clock,
        sleep=sleep,
    )
    client = RemoteClient(
        sessions,
        cfg.remote_base_url,
        timeout=cfg.remote_request_timeout_seconds,
        transport=transport,
        sleep=sleep,
    )
    gate = SyncGate(
        store,
        start=cfg.operating_hours_start,
        end=cfg.operating_hours_end,
        tz=cfg.operating_timezone,
        interval_minutes=cfg.sync_interval_minutes,
        clock=clock,
    )
    reconciler = SyncReconciler(
        sessions,
        client,
        store,
        session_factory,
        max_pages=cfg.sync_max_pages,
        page_delay=cfg.sync_page_delay_seconds,
        detail_delay=cfg.sync_detail_delay_seconds,
        fetch_detail=cfg.sync_fetch_detail,
        notifier=notifiers.dispatch,
        clock=clock,
        sleep=sleep,
    )
    return SyncRuntime(
        settings=cfg,
        store=store,
        sessions=sessions,
        client=client,
        gate=gate,
        reconciler=reconciler,
        code_bridge=code_bridge,
    )


_runtime: SyncRuntime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> SyncRuntime:
    """Shared runtime for the process (FastAPI dependency and scheduler jobs)."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            from booking_sync.db.session import SessionLocal

            _runtime = build_runtime(settings, SessionLocal)
            logger.info("Remote sync runtime ready (%s)", settings.remote_base_url)
        return _runtime
