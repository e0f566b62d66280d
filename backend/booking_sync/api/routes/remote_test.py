"""Tests for the /remote API routes."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from booking_sync.api.routes import remote
from booking_sync.services.runtime import get_runtime
from portal_fakes import CODE, VERIFICATION_EMAIL, detail_page, list_page, list_row


@pytest.fixture
def api(runtime):
    app = FastAPI()
    app.include_router(remote.router, prefix="/remote", tags=["remote"])
    app.dependency_overrides[get_runtime] = lambda: runtime
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def logged_in_api(api):
    assert api.post("/remote/login/request-code", json={}).status_code == 200
    assert api.post("/remote/login/confirm", json={"code": CODE}).status_code == 200
    return api


def test_two_step_login_with_configured_credentials(api):
    r = api.post("/remote/login/request-code", json={})
    assert r.status_code == 200
    assert r.json() == {"success": True, "verification_email": VERIFICATION_EMAIL}

    r = api.post("/remote/login/confirm", json={"code": CODE})
    assert r.status_code == 200
    assert r.json()["success"] is True

    status = api.get("/remote/login").json()
    assert status["is_logged_in"] is True
    assert status["state"] == "authenticated"
    assert status["stored"]["has_session"] is True


def test_bad_credentials_are_401_with_portal_message(api):
    r = api.post("/remote/login/request-code", json={"username": "sto-admin", "password": "nope"})

    assert r.status_code == 401
    assert r.json()["detail"]["kind"] == "rejected"
    assert "일치하지 않습니다" in r.json()["detail"]["error"]


def test_confirm_without_request_is_409(api):
    r = api.post("/remote/login/confirm", json={"code": CODE})

    assert r.status_code == 409
    assert r.json()["detail"]["kind"] == "no_pending"


def test_wrong_code_is_401(api):
    api.post("/remote/login/request-code", json={})

    r = api.post("/remote/login/confirm", json={"code": "000000"})
    assert r.status_code == 401
    assert r.json()["detail"]["kind"] == "code_rejected"


def test_auto_login(api, inbox):
    inbox.answers.append(CODE)

    r = api.post("/remote/login/auto", json={})
    assert r.status_code == 200
    assert api.get("/remote/login").json()["is_logged_in"] is True


def test_logout(logged_in_api):
    assert logged_in_api.post("/remote/logout").json() == {"success": True}

    status = logged_in_api.get("/remote/login").json()
    assert status["is_logged_in"] is False
    assert status["stored"]["has_session"] is False


def test_manual_sync_requires_login(api):
    r = api.post("/remote/sync", json={})

    assert r.status_code == 401
    assert r.json()["detail"]["needs_login"] is True


def test_manual_sync(logged_in_api, portal):
    portal.pages[1] = list_page([list_row(external_id="1001")])

    r = logged_in_api.post("/remote/sync", json={"force": False})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["new_bookings_count"] == 1
    assert body["new_bookings"][0]["external_id"] == "1001"

    status = logged_in_api.get("/remote/sync").json()
    assert status["is_syncing"] is False
    assert status["last_result"]["new_bookings_count"] == 1
    assert status["last_sync_at"] is not None


def test_manual_sync_while_syncing_is_409(logged_in_api, runtime):
    runtime.reconciler._lock.acquire()
    try:
        r = logged_in_api.post("/remote/sync", json={})
    finally:
        runtime.reconciler._lock.release()

    assert r.status_code == 409
    assert r.json()["detail"]["errors"] == ["already syncing"]


def test_cron_requires_secret_when_configured(logged_in_api, runtime):
    runtime.settings.cron_secret = "tick-secret"

    assert logged_in_api.post("/remote/cron").status_code == 401
    r = logged_in_api.post("/remote/cron", headers={"Authorization": "Bearer tick-secret"})
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_keepalive(logged_in_api):
    r = logged_in_api.post("/remote/keepalive")
    assert r.status_code == 200
    assert r.json()["success"] is True

    status = logged_in_api.get("/remote/keepalive").json()
    assert status["memory"]["is_logged_in"] is True
    assert status["stored"]["last_keepalive_at"] is not None


def test_bookings_scrape_does_not_store(logged_in_api, portal, db):
    from booking_sync.models.booking import Booking

    portal.pages[1] = list_page([list_row(external_id="1001", times=("10:00~12:00",))])

    r = logged_in_api.get("/remote/bookings", params={"max_pages": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["total_count"] == 1
    assert body["bookings"][0]["time_slots"] == [10, 11]
    assert db.query(Booking).count() == 0


def test_bookings_require_login(api):
    assert api.get("/remote/bookings").status_code == 401


def test_booking_detail(logged_in_api, portal):
    portal.details["1001"] = detail_page(full_name="홍길동")

    r = logged_in_api.get("/remote/bookings/1001")
    assert r.status_code == 200
    body = r.json()
    assert body["external_id"] == "1001"
    assert body["full_name"] == "홍길동"
    assert body["status"] == "CONFIRMED"


def test_booking_detail_remote_error_is_502(logged_in_api):
    assert logged_in_api.get("/remote/bookings/missing").status_code == 502


def test_file_download(logged_in_api, portal):
    portal.files["/cmm/fms/FileDown.do"] = (b"%PDF-1.4", "application/pdf")

    r = logged_in_api.get("/remote/files", params={"url": "/cmm/fms/FileDown.do?atchFileId=F1"})
    assert r.status_code == 200
    assert r.content == b"%PDF-1.4"
    assert r.headers["content-type"].startswith("application/pdf")


def test_file_download_refuses_foreign_host(logged_in_api, portal):
    sent = len(portal.requests)

    r = logged_in_api.get("/remote/files", params={"url": "https://evil.example/steal"})
    assert r.status_code == 502
    assert "not on the portal" in r.json()["detail"]["error"]
    assert len(portal.requests) == sent
