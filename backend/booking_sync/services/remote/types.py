"""
Typed definitions for data scraped from the remote reservation portal and for the
result variants the session/client layer returns instead of raising.

Records are frozen: every scrape produces a fresh snapshot that reconciliation compares
against the stored one; nothing is mutated in place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from booking_sync.core.errors import AuthErrorKind


class RemoteStatus(str, Enum):
    """Closed set of remote booking states. PAYMENT_WAIT is the tentative hold awaiting payment."""

    PENDING = "PENDING"
    PAYMENT_WAIT = "PAYMENT_WAIT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"

    def to_local(self) -> str:
        """Local store keeps three states; a payment hold is still pending locally."""
        if self is RemoteStatus.CONFIRMED:
            return "CONFIRMED"
        if self is RemoteStatus.CANCELLED:
            return "CANCELLED"
        return "PENDING"


@dataclass(frozen=True)
class RemoteBookingRecord:
    """One row of the remote list page."""

    external_id: str  # reqstSn; empty when the row carried no detail link
    row_number: int
    facility_name: str
    participants_count: int
    rental_date: date | None
    time_slots: tuple[int, ...]
    applicant_name: str  # masked on the list page
    organization: str
    phone: str  # masked on the list page
    status: RemoteStatus
    cancel_date: str | None
    special_note: str
    created_at: date | None


@dataclass(frozen=True)
class RemoteBookingDetail(RemoteBookingRecord):
    """List record plus the labeled fields of the detail page."""

    application_date: str = ""
    full_name: str = ""
    full_phone: str = ""
    email: str = ""
    company_phone: str = ""
    purpose: str = ""
    user_type: str = ""
    discount_rate: int = 0
    rental_fee: int | None = None
    bank_account: str = ""
    business_license: str = ""
    business_license_url: str = ""
    receipt_type: str = ""
    business_number: str = ""
    has_no_show: bool = False
    no_show_memo: str = ""
    studio_usage_method: str = ""
    file_delivery_method: str = ""
    pre_meeting_contact: str = ""
    other_inquiry: str = ""


@dataclass
class ParseStats:
    """Parse diagnostics. Never errors: a skipped row or unknown label does not fail a sync."""

    rows_seen: int = 0
    rows_skipped: int = 0
    unknown_status_labels: list[str] = field(default_factory=list)

    def merge(self, other: ParseStats) -> None:
        self.rows_seen += other.rows_seen
        self.rows_skipped += other.rows_skipped
        self.unknown_status_labels.extend(other.unknown_status_labels)


@dataclass
class RemoteSession:
    """Authenticated portal session. Mutated only under SessionManager's lock."""

    cookie_jar: str
    expires_at: datetime
    is_logged_in: bool = True


@dataclass(frozen=True)
class Credentials:
    username: str
    secret: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, secret='***')"


@dataclass(frozen=True)
class PendingAuthentication:
    """Credentials accepted, code mailed, waiting for confirmation. Never persisted."""

    username: str
    secret: str = field(repr=False)
    verification_email: str
    cookie_jar: str = field(repr=False)
    created_at: datetime


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    session: RemoteSession | None = None
    verification_email: str | None = None
    error: str | None = None
    kind: AuthErrorKind | None = None

    @classmethod
    def failure(cls, kind: AuthErrorKind, error: str) -> AuthResult:
        return cls(ok=False, error=error, kind=kind)


@dataclass(frozen=True)
class FetchResult:
    """One of: content (html or bytes), session_expired, or error."""

    html: str | None = None
    content: bytes | None = None
    content_type: str | None = None
    session_expired: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.session_expired and self.error is None

    @classmethod
    def expired(cls) -> FetchResult:
        return cls(session_expired=True, error="remote session expired")

    @classmethod
    def failed(cls, error: str) -> FetchResult:
        return cls(error=error)


@dataclass
class ScrapeResult:
    """All list pages of one scrape. auth_failed means page 1 hit an expired session (nothing usable)."""

    records: list[RemoteBookingRecord] = field(default_factory=list)
    total_count: int = 0
    pages_fetched: int = 0
    errors: list[str] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)
    auth_failed: bool = False

    @property
    def aborted(self) -> bool:
        return self.pages_fetched == 0


@dataclass(frozen=True)
class CodeResult:
    ok: bool
    code: str | None = None
    timed_out: bool = False
    error: str | None = None


@dataclass(frozen=True)
class BookingChange:
    """A stored booking whose remote state moved. previous_status may equal new_status when only other fields changed."""

    record: RemoteBookingRecord
    previous_status: RemoteStatus | None
    new_status: RemoteStatus
    changed_fields: tuple[str, ...] = ()

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status


@dataclass
class SyncResult:
    success: bool
    synced_at: datetime
    total_count: int = 0
    new_bookings: list[RemoteBookingRecord] = field(default_factory=list)
    status_changes: list[BookingChange] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """API shape: counts plus compact rows (full records stay server-side)."""
        return {
            "success": self.success,
            "total_count": self.total_count,
            "new_bookings_count": len(self.new_bookings),
            "status_changes_count": len(self.status_changes),
            "new_bookings": [
                {
                    "external_id": b.external_id,
                    "facility_name": b.facility_name,
                    "rental_date": b.rental_date.isoformat() if b.rental_date else None,
                    "applicant_name": b.applicant_name,
                    "status": b.status.value,
                }
                for b in self.new_bookings
            ],
            "status_changes": [
                {
                    "external_id": c.record.external_id,
                    "applicant_name": c.record.applicant_name,
                    "rental_date": c.record.rental_date.isoformat() if c.record.rental_date else None,
                    "facility_name": c.record.facility_name,
                    "previous_status": c.previous_status.value if c.previous_status else None,
                    "new_status": c.new_status.value,
                    "changed_fields": list(c.changed_fields),
                }
                for c in self.status_changes
            ],
            "errors": self.errors,
            "warnings": self.warnings,
            "synced_at": self.synced_at.isoformat(),
        }
