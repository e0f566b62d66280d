"""
Remote -> local booking reconciliation.

One run: take the sync lock (non-blocking) -> ensure a session -> scrape list pages ->
for each record, match by natural key against bookings: insert new, update changed, skip unchanged.
Each record commits on its own; a constraint/data error on one record is recorded and the run
continues. An unreachable database (OperationalError) ends the run as failed.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from booking_sync.core.constants import MSG_ALREADY_SYNCING, MSG_SESSION_INVALID
from booking_sync.models.booking import Booking
from booking_sync.services.remote.matching import natural_key, studio_id_for
from booking_sync.services.remote.types import (
    BookingChange,
    RemoteBookingDetail,
    RemoteBookingRecord,
    RemoteStatus,
    ScrapeResult,
    SyncResult,
)

if TYPE_CHECKING:
    from booking_sync.services.remote.auth import SessionManager
    from booking_sync.services.remote.client import RemoteClient
    from booking_sync.services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Fields compared on every scrape. Name/phone are masked on the list page and never compared.
_TRACKED_FIELDS = ("status", "participants_count", "rental_date", "time_slots", "studio_id", "cancel_date")


def _previous_status(row: Booking) -> RemoteStatus | None:
    try:
        return RemoteStatus(row.remote_status) if row.remote_status else None
    except ValueError:
        return None


def _changed_fields(row: Booking, record: RemoteBookingRecord) -> list[str]:
    current = {
        "status": row.remote_status,
        "participants_count": row.participants_count,
        "rental_date": row.rental_date,
        "time_slots": tuple(sorted(row.time_slots or [])),
        "studio_id": row.studio_id,
        "cancel_date": row.cancel_date or None,
    }
    scraped = {
        "status": record.status.value,
        "participants_count": record.participants_count,
        "rental_date": record.rental_date,
        "time_slots": record.time_slots,
        "studio_id": studio_id_for(record.facility_name),
        "cancel_date": record.cancel_date or None,
    }
    return [name for name in _TRACKED_FIELDS if current[name] != scraped[name]]


def _apply_record(row: Booking, record: RemoteBookingRecord) -> None:
    row.remote_status = record.status.value
    row.status = record.status.to_local()
    row.payment_confirmed = record.status is RemoteStatus.CONFIRMED
    row.participants_count = record.participants_count
    row.rental_date = record.rental_date
    row.time_slots = list(record.time_slots)
    row.studio_id = studio_id_for(record.facility_name)
    row.facility_name = record.facility_name or row.facility_name
    row.cancel_date = record.cancel_date
    if record.special_note:
        row.special_note = record.special_note
    if record.external_id and not row.sto_reqst_sn:
        row.sto_reqst_sn = record.external_id


def booking_from_record(record: RemoteBookingRecord) -> Booking:
    """New local row. Detail fields fill in when record is a RemoteBookingDetail."""
    row = Booking(
        applicant_name=record.applicant_name,
        organization=record.organization or None,
        phone=record.phone,
        sto_reqst_sn=record.external_id or None,
        remote_created_at=record.created_at,
    )
    _apply_record(row, record)
    if isinstance(record, RemoteBookingDetail):
        row.applicant_name = record.full_name or record.applicant_name
        row.phone = record.full_phone or record.phone
        row.email = record.email or None
        row.purpose = record.purpose or None
        row.event_name = record.purpose or None
        row.fee = record.rental_fee
        row.user_type = record.user_type or None
        row.discount_rate = record.discount_rate
        row.company_phone = record.company_phone or None
        row.bank_account = record.bank_account or None
        row.business_license = record.business_license or None
        row.business_license_url = record.business_license_url or None
        row.receipt_type = record.receipt_type or None
        row.business_number = record.business_number or None
        row.has_no_show = record.has_no_show
        row.no_show_memo = record.no_show_memo or None
        row.studio_usage_method = record.studio_usage_method or None
        row.file_delivery_method = record.file_delivery_method or None
        row.pre_meeting_contact = record.pre_meeting_contact or None
        row.other_inquiry = record.other_inquiry or None
    return row


def find_booking(db: Session, record: RemoteBookingRecord) -> Booking | None:
    """Stored row for record's natural key (see matching.natural_key)."""
    if record.external_id:
        return db.query(Booking).filter(Booking.sto_reqst_sn == record.external_id).first()
    candidates = (
        db.query(Booking)
        .filter(
            Booking.rental_date == record.rental_date,
            Booking.studio_id == studio_id_for(record.facility_name),
        )
        .all()
    )
    for row in candidates:
        if tuple(sorted(row.time_slots or [])) == record.time_slots:
            return row
    return None


class SyncReconciler:
    """Single entry point for scheduled and manual syncs. Only one run at a time per process."""

    def __init__(
        self,
        sessions: SessionManager,
        client: RemoteClient,
        store: SessionStore,
        session_factory: sessionmaker,
        *,
        max_pages: int = 5,
        page_delay: float = 0.5,
        detail_delay: float = 0.3,
        fetch_detail: bool = True,
        notifier: Callable[[SyncResult], None] | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._sessions = sessions
        self._client = client
        self._store = store
        self._session_factory = session_factory
        self._max_pages = max_pages
        self._page_delay = page_delay
        self._detail_delay = detail_delay
        self._fetch_detail = fetch_detail
        self._notifier = notifier
        self._now = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_result: SyncResult | None = None

    def is_syncing(self) -> bool:
        return self._lock.locked()

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    def scrape(self, max_pages: int | None = None) -> ScrapeResult:
        """Read-only scrape (no lock, no storage)."""
        return self._client.fetch_all_bookings(max_pages or self._max_pages, page_delay=self._page_delay)

    def sync_all(self, max_pages: int | None = None, fetch_detail: bool | None = None) -> SyncResult:
        result = SyncResult(success=False, synced_at=self._now())
        if not self._lock.acquire(blocking=False):
            logger.info("Sync requested while another sync is running")
            result.errors.append(MSG_ALREADY_SYNCING)
            return result
        try:
            self._run(result, max_pages, self._fetch_detail if fetch_detail is None else fetch_detail)
        finally:
            self._last_result = result
            self._lock.release()

        if self._notifier is not None and (result.new_bookings or result.status_changes):
            self._notifier(result)
        return result

    def _run(self, result: SyncResult, max_pages: int | None, fetch_detail: bool) -> None:
        if not self._sessions.ensure_valid():
            result.errors.append(MSG_SESSION_INVALID)
            return

        scrape = self.scrape(max_pages)
        result.total_count = scrape.total_count
        result.errors.extend(scrape.errors)
        if scrape.stats.rows_skipped:
            result.warnings.append(f"{scrape.stats.rows_skipped} list row(s) skipped (too few cells)")
        for label in dict.fromkeys(scrape.stats.unknown_status_labels):
            result.warnings.append(f"unknown status label {label!r}")
        if scrape.aborted:
            logger.warning("Sync aborted before any page was read: %s", "; ".join(scrape.errors))
            return

        try:
            self._reconcile(scrape.records, result, fetch_detail)
        except OperationalError as e:
            logger.exception("Database unavailable during sync")
            result.errors.append(f"database unavailable: {e.orig if e.orig is not None else e}")
            return

        self._store.record_sync(result.synced_at)
        self._sessions.touch()
        result.success = not result.errors
        logger.info(
            "Sync done: total=%s new=%s changed=%s errors=%s warnings=%s",
            result.total_count,
            len(result.new_bookings),
            len(result.status_changes),
            len(result.errors),
            len(result.warnings),
        )

    def _reconcile(self, records: list[RemoteBookingRecord], result: SyncResult, fetch_detail: bool) -> None:
        db = self._session_factory()
        details_fetched = 0
        try:
            for record in records:
                if record.rental_date is None:
                    result.warnings.append(f"booking {record.external_id or record.row_number}: no rental date; skipped")
                    continue
                key = natural_key(record)
                try:
                    row = find_booking(db, record)
                    if row is None:
                        listed = record
                        if fetch_detail and record.external_id:
                            if details_fetched and self._detail_delay > 0:
                                self._sleep(self._detail_delay)
                            record = self._with_detail(record, result)
                            details_fetched += 1
                        row = booking_from_record(record)
                        if record is not listed:
                            # tracked fields stay list-derived; the next scrape compares list values
                            _apply_record(row, listed)
                        db.add(row)
                        db.commit()
                        result.new_bookings.append(record)
                        continue

                    changed = _changed_fields(row, record)
                    if not changed:
                        continue
                    previous = _previous_status(row)
                    _apply_record(row, record)
                    db.commit()
                    result.status_changes.append(
                        BookingChange(
                            record=record,
                            previous_status=previous,
                            new_status=record.status,
                            changed_fields=tuple(changed),
                        )
                    )
                except OperationalError:
                    db.rollback()
                    raise
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.warning("Persisting booking %s failed: %s", key, e)
                    result.errors.append(f"booking {record.external_id or key}: {type(e).__name__}")
        finally:
            db.close()

    def _with_detail(self, record: RemoteBookingRecord, result: SyncResult) -> RemoteBookingRecord:
        """Detail-enriched record, or the list record when the detail page cannot be read."""
        detail, fetched = self._client.fetch_booking_detail(record.external_id, record)
        if detail is None:
            result.warnings.append(f"booking {record.external_id}: detail unavailable ({fetched.error})")
            return record
        return detail
