"""Initial schema: bookings (local store, remote identity and detail fields) and remote_sessions.

- bookings.sto_reqst_sn: remote request id; unique so a scrape can never insert the same booking twice.
  NULL for bookings created locally.
- bookings.remote_status: raw remote state (PENDING | PAYMENT_WAIT | CONFIRMED | CANCELLED);
  bookings.status is the local three-state view of it.
- remote_sessions: single row id=1 with the portal cookie jar, expiry and sync/keep-alive timestamps.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("studio_id", sa.Integer(), nullable=False),
        sa.Column("facility_name", sa.String(128), nullable=True),
        sa.Column("rental_date", sa.Date(), nullable=False),
        sa.Column("time_slots", sa.JSON(), nullable=False),
        sa.Column("applicant_name", sa.String(128), nullable=False),
        sa.Column("organization", sa.String(256), nullable=True),
        sa.Column("phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("email", sa.String(256), nullable=True),
        sa.Column("event_name", sa.String(256), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("participants_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("fee", sa.Integer(), nullable=True),
        sa.Column("cancel_date", sa.String(32), nullable=True),
        sa.Column("sto_reqst_sn", sa.String(32), nullable=True),
        sa.Column("remote_status", sa.String(16), nullable=True),
        sa.Column("remote_created_at", sa.Date(), nullable=True),
        sa.Column("special_note", sa.Text(), nullable=True),
        sa.Column("user_type", sa.String(128), nullable=True),
        sa.Column("discount_rate", sa.Integer(), nullable=True),
        sa.Column("company_phone", sa.String(64), nullable=True),
        sa.Column("bank_account", sa.String(256), nullable=True),
        sa.Column("business_license", sa.String(256), nullable=True),
        sa.Column("business_license_url", sa.String(512), nullable=True),
        sa.Column("receipt_type", sa.String(64), nullable=True),
        sa.Column("business_number", sa.String(32), nullable=True),
        sa.Column("has_no_show", sa.Boolean(), nullable=True),
        sa.Column("no_show_memo", sa.Text(), nullable=True),
        sa.Column("studio_usage_method", sa.Text(), nullable=True),
        sa.Column("file_delivery_method", sa.Text(), nullable=True),
        sa.Column("pre_meeting_contact", sa.Text(), nullable=True),
        sa.Column("other_inquiry", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookings_sto_reqst_sn", "bookings", ["sto_reqst_sn"], unique=True)
    op.create_index("ix_bookings_rental_date", "bookings", ["rental_date"], unique=False)
    op.create_index("ix_bookings_studio_id", "bookings", ["studio_id"], unique=False)

    op.create_table(
        "remote_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cookies", sa.Text(), nullable=False, server_default=""),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_keepalive_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("remote_sessions")
    op.drop_index("ix_bookings_studio_id", table_name="bookings")
    op.drop_index("ix_bookings_rental_date", table_name="bookings")
    op.drop_index("ix_bookings_sto_reqst_sn", table_name="bookings")
    op.drop_table("bookings")
