"""Tests for the keep-alive ping."""

from datetime import timedelta

from booking_sync.core.constants import LIST_PATH
from booking_sync.services.keepalive import keep_alive


def test_without_session(sessions, client, portal):
    result = keep_alive(sessions, client)

    assert result == {"success": False, "needs_login": True, "message": "no active session"}
    assert portal.requests == []


def test_success_extends_session(logged_in, client, portal, store, clock):
    clock.advance(minutes=20)

    result = keep_alive(logged_in, client)
    assert result["success"]
    assert result["expires_at"] == (clock.now + timedelta(minutes=30)).isoformat()
    assert portal.requests[-1].url.path == LIST_PATH
    assert store.snapshot()["last_keepalive_at"] == clock.now.isoformat()


def test_expired_session_needs_login(logged_in, client, portal):
    portal.session_valid = False

    result = keep_alive(logged_in, client)
    assert not result["success"]
    assert result["needs_login"]
    assert not logged_in.is_valid()


def test_remote_error_keeps_session(logged_in, client, portal, store):
    before = store.load().expires_at
    portal.fail_pages.add(1)

    result = keep_alive(logged_in, client)
    assert not result["success"]
    assert not result["needs_login"]
    assert logged_in.is_valid()
    assert store.load().expires_at == before
