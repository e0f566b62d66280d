"""Identity of a remote booking across scrapes, and the facility -> local studio mapping."""
from booking_sync.core.constants import DEFAULT_STUDIO_ID, FACILITY_STUDIO_IDS
from booking_sync.services.remote.types import RemoteBookingRecord


def studio_id_for(facility_name: str) -> int:
    name = (facility_name or "").strip()
    if name in FACILITY_STUDIO_IDS:
        return FACILITY_STUDIO_IDS[name]
    # list cells sometimes carry extra text around the facility name
    for label, studio_id in FACILITY_STUDIO_IDS.items():
        if label in name:
            return studio_id
    return DEFAULT_STUDIO_ID


def natural_key(record: RemoteBookingRecord) -> tuple:
    """
    The remote request id when the row has one. Otherwise (rental date, studio, exact slot set):
    two rows without ids only match when every slot is identical.
    """
    if record.external_id:
        return ("id", record.external_id)
    return (
        "slot",
        record.rental_date.isoformat() if record.rental_date else "",
        studio_id_for(record.facility_name),
        record.time_slots,
    )
