"""Remote reservation portal: session/login, page client, HTML parsers."""
from booking_sync.services.remote.auth import AuthEvent, AuthState, SessionManager
from booking_sync.services.remote.client import RemoteClient
from booking_sync.services.remote.matching import natural_key, studio_id_for
from booking_sync.services.remote.parser import parse_detail, parse_list, parse_total_count, parse_total_pages
from booking_sync.services.remote.types import (
    AuthResult,
    BookingChange,
    Credentials,
    FetchResult,
    RemoteBookingDetail,
    RemoteBookingRecord,
    RemoteSession,
    RemoteStatus,
    ScrapeResult,
    SyncResult,
)

__all__ = [
    "AuthEvent",
    "AuthResult",
    "AuthState",
    "BookingChange",
    "Credentials",
    "FetchResult",
    "RemoteBookingDetail",
    "RemoteBookingRecord",
    "RemoteClient",
    "RemoteSession",
    "RemoteStatus",
    "ScrapeResult",
    "SessionManager",
    "SyncResult",
    "natural_key",
    "parse_detail",
    "parse_list",
    "parse_total_count",
    "parse_total_pages",
    "studio_id_for",
]
