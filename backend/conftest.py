"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point them at sqlite before anything imports booking_sync
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REMOTE_BASE_URL", "https://portal.test")

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from booking_sync.config import Settings
from booking_sync.db.base import Base
from booking_sync.db.session import build_engine
from booking_sync.models import Booking, RemoteSessionRecord  # noqa: F401
from booking_sync.services.remote.auth import SessionManager
from booking_sync.services.remote.client import RemoteClient
from booking_sync.services.remote.types import Credentials
from booking_sync.services.runtime import build_runtime
from booking_sync.services.session_store import SessionStore
from portal_fakes import BASE_URL, CODE, PASSWORD, USERNAME, FakeClock, FakeInbox, FakePortal, no_sleep

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    # 2026-03-03 10:00 in Seoul
    return FakeClock(datetime(2026, 3, 3, 1, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(session_factory, clock):
    return SessionStore(session_factory, clock=clock)


@pytest.fixture
def portal():
    return FakePortal()


@pytest.fixture
def credentials():
    return Credentials(USERNAME, PASSWORD)


@pytest.fixture
def sessions(store, portal, clock):
    return SessionManager(
        store,
        BASE_URL,
        code_request_delay=0,
        transport=portal.transport,
        clock=clock,
        sleep=no_sleep,
    )


@pytest.fixture
def logged_in(sessions, credentials):
    """SessionManager that completed the 2-step login against the fake portal."""
    assert sessions.request_verification_code(credentials).ok
    assert sessions.confirm_verification_code(CODE).ok
    return sessions


@pytest.fixture
def client(sessions, portal):
    return RemoteClient(sessions, BASE_URL, transport=portal.transport, sleep=no_sleep)


@pytest.fixture
def settings_for_tests():
    return Settings(
        database_url="sqlite://",
        remote_base_url=BASE_URL,
        remote_username=USERNAME,
        remote_password=PASSWORD,
        sync_page_delay_seconds=0,
        sync_detail_delay_seconds=0,
        code_request_delay_seconds=0,
        verification_code_timeout_seconds=1,
        verification_code_poll_seconds=1,
        sync_auto_login=True,
        imap_user="",
        imap_password="",
        cron_secret="",
    )


@pytest.fixture
def inbox():
    return FakeInbox()


@pytest.fixture
def runtime(settings_for_tests, session_factory, portal, inbox, clock):
    return build_runtime(
        settings_for_tests,
        session_factory,
        transport=portal.transport,
        inbox=inbox,
        clock=clock,
        sleep=no_sleep,
    )
