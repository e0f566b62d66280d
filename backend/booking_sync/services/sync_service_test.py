"""Tests for remote -> local booking reconciliation."""

import threading
from datetime import date

import pytest

from booking_sync.core.constants import MSG_ALREADY_SYNCING, MSG_SESSION_INVALID
from booking_sync.models.booking import Booking
from booking_sync.services import sync_service
from booking_sync.services.remote.types import RemoteStatus
from booking_sync.services.sync_service import SyncReconciler
from portal_fakes import CODE, detail_page, list_page, list_row, no_sleep


@pytest.fixture
def rt(runtime, credentials):
    """Runtime whose session manager has completed a login against the fake portal."""
    assert runtime.sessions.request_verification_code(credentials).ok
    assert runtime.sessions.confirm_verification_code(CODE).ok
    return runtime


def _bookings(db):
    db.expire_all()
    return db.query(Booking).order_by(Booking.id).all()


def test_new_bookings_are_inserted(rt, portal, db, store, clock):
    portal.pages[1] = list_page(
        [
            list_row(external_id="1001", status="신청접수"),
            list_row(external_id="1002", row_number=2, status="대관확정", times=("09:00~10:00", "10:00~11:00")),
        ]
    )

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert result.success
    assert result.total_count == 2
    assert [r.external_id for r in result.new_bookings] == ["1001", "1002"]
    assert result.status_changes == []

    rows = _bookings(db)
    assert [r.sto_reqst_sn for r in rows] == ["1001", "1002"]
    assert rows[0].status == "PENDING"
    assert rows[0].rental_date == date(2026, 3, 10)
    assert rows[1].status == "CONFIRMED"
    assert rows[1].payment_confirmed is True
    assert rows[1].time_slots == [9, 10]
    assert store.last_sync_at() == clock.now


def test_second_identical_sync_changes_nothing(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001")])
    rt.reconciler.sync_all(fetch_detail=False)

    again = rt.reconciler.sync_all(fetch_detail=False)
    assert again.success
    assert again.new_bookings == []
    assert again.status_changes == []
    assert len(_bookings(db)) == 1


def test_status_change_is_reported_with_previous_status(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001", status="신청접수")])
    rt.reconciler.sync_all(fetch_detail=False)

    portal.pages[1] = list_page([list_row(external_id="1001", status="대관확정")])
    result = rt.reconciler.sync_all(fetch_detail=False)

    assert result.new_bookings == []
    [change] = result.status_changes
    assert change.previous_status is RemoteStatus.PENDING
    assert change.new_status is RemoteStatus.CONFIRMED
    assert change.changed_fields == ("status",)

    [row] = _bookings(db)
    assert row.status == "CONFIRMED"
    assert row.remote_status == "CONFIRMED"
    assert row.payment_confirmed is True


def test_non_status_change_is_reported(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001", participants="5명")])
    rt.reconciler.sync_all(fetch_detail=False)

    portal.pages[1] = list_page([list_row(external_id="1001", participants="8명")])
    [change] = rt.reconciler.sync_all(fetch_detail=False).status_changes

    assert not change.status_changed
    assert change.changed_fields == ("participants_count",)
    assert _bookings(db)[0].participants_count == 8


def test_masked_fields_are_not_compared(rt, portal):
    portal.pages[1] = list_page([list_row(external_id="1001", applicant="홍*동", phone="010-****-1234")])
    rt.reconciler.sync_all(fetch_detail=False)

    portal.pages[1] = list_page([list_row(external_id="1001", applicant="홍길*", phone="010-1234-****")])
    assert rt.reconciler.sync_all(fetch_detail=False).status_changes == []


def test_payment_wait_is_pending_locally(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001", status="입금대기")])
    rt.reconciler.sync_all(fetch_detail=False)

    [row] = _bookings(db)
    assert row.remote_status == "PAYMENT_WAIT"
    assert row.status == "PENDING"
    assert row.payment_confirmed is False


def test_unknown_status_label_is_a_warning(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001", status="보류중")])

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert result.success
    assert result.errors == []
    assert any("보류중" in w for w in result.warnings)
    assert _bookings(db)[0].remote_status == "PENDING"


def test_record_without_rental_date_is_skipped(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001", rental_date="미정"), list_row(external_id="1002")])

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert [r.external_id for r in result.new_bookings] == ["1002"]
    assert any("1001" in w for w in result.warnings)
    assert [r.sto_reqst_sn for r in _bookings(db)] == ["1002"]


def test_rows_without_external_id_match_on_date_studio_and_slots(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="", times=("13:00~14:00",))])
    assert len(rt.reconciler.sync_all(fetch_detail=False).new_bookings) == 1

    portal.pages[1] = list_page([list_row(external_id="", times=("13:00~14:00",), status="대관확정")])
    result = rt.reconciler.sync_all(fetch_detail=False)

    assert result.new_bookings == []
    assert len(result.status_changes) == 1
    assert len(_bookings(db)) == 1


def test_detail_page_fills_unmasked_fields(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001")])
    portal.details["1001"] = detail_page(full_name="홍길동", email="hong@example.com")

    result = rt.reconciler.sync_all()
    assert result.success

    [row] = _bookings(db)
    assert row.applicant_name == "홍길동"
    assert row.phone == "010-1234-5678"
    assert row.email == "hong@example.com"
    assert row.business_license_url == "/cmm/fms/FileDown.do?atchFileId=F1"


def test_detail_enriched_insert_is_stable_on_next_scrape(rt, portal, db):
    # detail page disagrees with the list row on status, studio and slots
    portal.pages[1] = list_page([list_row(external_id="1001", status="신청접수")])
    portal.details["1001"] = detail_page(full_name="홍길동")

    first = rt.reconciler.sync_all(fetch_detail=True)
    assert [r.external_id for r in first.new_bookings] == ["1001"]

    again = rt.reconciler.sync_all(fetch_detail=True)
    assert again.success
    assert again.new_bookings == []
    assert again.status_changes == []

    [row] = _bookings(db)
    assert row.applicant_name == "홍길동"
    assert row.remote_status == "PENDING"
    assert row.time_slots == [10]


def test_missing_detail_page_falls_back_to_list_record(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1001", applicant="홍*동")])

    result = rt.reconciler.sync_all()
    assert result.success
    assert any("detail unavailable" in w for w in result.warnings)
    assert _bookings(db)[0].applicant_name == "홍*동"


def test_without_session_nothing_is_fetched(runtime, portal, db, store):
    result = runtime.reconciler.sync_all()

    assert not result.success
    assert result.errors == [MSG_SESSION_INVALID]
    assert portal.requests == []
    assert _bookings(db) == []
    assert store.last_sync_at() is None


def test_session_expired_on_first_page(rt, portal, store):
    portal.session_valid = False

    result = rt.reconciler.sync_all()
    assert not result.success
    assert result.errors
    assert not rt.sessions.is_valid()
    assert store.last_sync_at() is None


def test_failed_page_is_an_error_but_other_pages_persist(rt, portal, db):
    portal.pages[1] = list_page([list_row(external_id="1")], total=21)
    portal.pages[3] = list_page([list_row(external_id="3")], total=21)
    portal.fail_pages.add(2)

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert not result.success
    assert result.errors == ["page 2: Remote error: 500"]
    assert [r.sto_reqst_sn for r in _bookings(db)] == ["1", "3"]


def test_session_expiring_mid_scrape_keeps_earlier_pages(rt, portal, db, store):
    portal.pages[1] = list_page([list_row(external_id="1")], total=21)
    portal.pages[2] = list_page([list_row(external_id="2")], total=21)
    portal.expire_after_page = 1

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert not result.success
    assert result.errors == ["page 2: remote session expired"]
    assert [r.sto_reqst_sn for r in _bookings(db)] == ["1"]
    assert not rt.sessions.is_valid()
    assert store.load() is None


def test_persistence_failure_on_one_record_is_recorded(rt, portal, db, monkeypatch):
    original = sync_service.booking_from_record

    def broken(record):
        row = original(record)
        if record.external_id == "2":
            row.applicant_name = None
        return row

    monkeypatch.setattr(sync_service, "booking_from_record", broken)
    portal.pages[1] = list_page([list_row(external_id="1"), list_row(external_id="2"), list_row(external_id="3")])

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert not result.success
    assert len(result.errors) == 1
    assert result.errors[0].startswith("booking 2:")
    assert [r.sto_reqst_sn for r in _bookings(db)] == ["1", "3"]


def test_database_unavailable_fails_run_and_releases_lock(rt, portal, engine, store):
    portal.pages[1] = list_page([list_row(external_id="1")])
    Booking.__table__.drop(engine)

    result = rt.reconciler.sync_all(fetch_detail=False)
    assert not result.success
    assert any("database unavailable" in e for e in result.errors)
    assert not rt.reconciler.is_syncing()
    assert store.last_sync_at() is None


def test_concurrent_sync_is_rejected(rt, portal):
    portal.pages[1] = list_page([list_row(external_id="1")])
    portal.hold = threading.Event()
    results = []
    worker = threading.Thread(target=lambda: results.append(rt.reconciler.sync_all(fetch_detail=False)))
    worker.start()
    try:
        assert portal.entered.wait(5)
        assert rt.reconciler.is_syncing()

        second = rt.reconciler.sync_all()
        assert not second.success
        assert second.errors == [MSG_ALREADY_SYNCING]
    finally:
        portal.hold.set()
        worker.join(5)

    assert results[0].success
    assert not rt.reconciler.is_syncing()
    assert rt.reconciler.last_result is results[0]


def test_notifier_called_only_when_something_changed(rt, portal, session_factory):
    seen = []
    reconciler = SyncReconciler(
        rt.sessions,
        rt.client,
        rt.store,
        session_factory,
        page_delay=0,
        fetch_detail=False,
        notifier=seen.append,
        sleep=no_sleep,
    )
    portal.pages[1] = list_page([list_row(external_id="1")])

    first = reconciler.sync_all()
    reconciler.sync_all()

    assert seen == [first]
