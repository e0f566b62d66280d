from booking_sync.db.base import Base
from booking_sync.db.session import SessionLocal, engine, get_db
from booking_sync.db.tables import ALL_TABLE_NAMES, SYNC_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "SYNC_TABLE_NAMES"]
