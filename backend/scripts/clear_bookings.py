#!/usr/bin/env python3
"""
Completely clear synced bookings (bookings table). Fast (TRUNCATE). The remote session row is kept.
Run with backend stopped to avoid locks: cd backend && python scripts/clear_bookings.py
"""
import sys
from pathlib import Path

# backend/scripts/ -> backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text

from booking_sync.db.session import engine
from booking_sync.db.tables import SYNC_TABLE_NAMES


def main():
    tables = ", ".join(SYNC_TABLE_NAMES)
    print(f"Connecting to DB and truncating {tables} ...")
    with engine.connect() as conn:
        conn.execute(text(f"TRUNCATE TABLE {tables} RESTART IDENTITY CASCADE"))
        conn.commit()
    print("Done. Bookings are empty; the next sync re-inserts everything the portal lists.")


if __name__ == "__main__":
    main()
