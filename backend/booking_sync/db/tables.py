"""
Single source of truth for database tables that exist after migrations.

Use these names when writing raw SQL (e.g. TRUNCATE).
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "bookings",
    "remote_sessions",
)

# Tables cleared when resetting sync state. The session row is kept so a reset does not force a re-login.
SYNC_TABLE_NAMES = ("bookings",)
