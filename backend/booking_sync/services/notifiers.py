"""
Registry of sync notifiers. A notifier is any callable taking a BookingEvent.

Delivery (push, mail, chat) lives outside this package; register a callable for it here.
The logging notifier is registered on first import.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass

from booking_sync.services.remote.types import BookingChange, RemoteBookingRecord, SyncResult

logger = logging.getLogger(__name__)

EVENT_NEW_BOOKING = "new_booking"
EVENT_STATUS_CHANGED = "status_changed"
EVENT_BOOKING_UPDATED = "booking_updated"


@dataclass(frozen=True)
class BookingEvent:
    kind: str
    record: RemoteBookingRecord
    change: BookingChange | None = None


Notifier = Callable[[BookingEvent], None]

_notifiers: dict[str, Notifier] = {}


def register(name: str, notifier: Notifier) -> None:
    """Register (or replace) a notifier under name."""
    _notifiers[name] = notifier
    logger.info("Registered sync notifier: %s", name)


def unregister(name: str) -> None:
    _notifiers.pop(name, None)


def list_notifiers() -> list[str]:
    return list(_notifiers.keys())


def events_from_result(result: SyncResult) -> list[BookingEvent]:
    events = [BookingEvent(EVENT_NEW_BOOKING, record) for record in result.new_bookings]
    for change in result.status_changes:
        kind = EVENT_STATUS_CHANGED if change.status_changed else EVENT_BOOKING_UPDATED
        events.append(BookingEvent(kind, change.record, change))
    return events


def dispatch(result: SyncResult) -> int:
    """Send every event of result to every notifier. A failing notifier is logged and skipped."""
    events = events_from_result(result)
    delivered = 0
    for name, notifier in list(_notifiers.items()):
        for event in events:
            try:
                notifier(event)
                delivered += 1
            except Exception:
                logger.exception("Notifier %s failed on %s for %s", name, event.kind, event.record.external_id)
    return delivered


def log_event(event: BookingEvent) -> None:
    r = event.record
    when = r.rental_date.isoformat() if r.rental_date else "?"
    if event.kind == EVENT_NEW_BOOKING:
        logger.info("New remote booking %s: %s %s %s (%s)", r.external_id, when, r.facility_name, r.applicant_name, r.status.value)
    elif event.kind == EVENT_STATUS_CHANGED:
        previous = event.change.previous_status.value if event.change.previous_status else "-"
        logger.info("Remote booking %s status %s -> %s (%s %s)", r.external_id, previous, r.status.value, when, r.facility_name)
    else:
        fields = ", ".join(event.change.changed_fields) if event.change else ""
        logger.info("Remote booking %s updated: %s", r.external_id, fields)


def _init_registry() -> None:
    register("log", log_event)


_init_registry()
