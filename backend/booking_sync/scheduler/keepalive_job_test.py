"""Tests for the keep-alive job wrapper."""

from booking_sync.scheduler import keepalive_job
from portal_fakes import CODE


def test_keepalive_job_extends_session(runtime, credentials, store, clock, monkeypatch):
    monkeypatch.setattr(keepalive_job, "get_runtime", lambda: runtime)
    runtime.sessions.request_verification_code(credentials)
    runtime.sessions.confirm_verification_code(CODE)

    keepalive_job.run_keepalive_job()
    assert store.snapshot()["last_keepalive_at"] == clock.now.isoformat()


def test_keepalive_job_without_session(runtime, portal, monkeypatch):
    monkeypatch.setattr(keepalive_job, "get_runtime", lambda: runtime)

    keepalive_job.run_keepalive_job()
    assert portal.requests == []
