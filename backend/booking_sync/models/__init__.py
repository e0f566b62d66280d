from booking_sync.models.booking import Booking
from booking_sync.models.remote_session import REMOTE_SESSION_ROW_ID, RemoteSessionRecord

__all__ = [
    "Booking",
    "REMOTE_SESSION_ROW_ID",
    "RemoteSessionRecord",
]
