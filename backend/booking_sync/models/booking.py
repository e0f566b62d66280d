"""Local booking row. Rows synced from the remote portal carry sto_reqst_sn and remote_status; manual rows leave them null."""
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from booking_sync.db.base import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    studio_id = Column(Integer, nullable=False, index=True)
    facility_name = Column(String(128), nullable=True)
    rental_date = Column(Date, nullable=False, index=True)
    time_slots = Column(JSON, nullable=False, default=list)  # ascending hour markers, e.g. [9, 10]
    applicant_name = Column(String(128), nullable=False)
    organization = Column(String(256), nullable=True)
    phone = Column(String(64), nullable=False, default="")
    email = Column(String(256), nullable=True)
    event_name = Column(String(256), nullable=True)
    purpose = Column(Text, nullable=True)
    participants_count = Column(Integer, nullable=False, default=0)
    payment_confirmed = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default="PENDING")  # local status: PENDING | CONFIRMED | CANCELLED
    fee = Column(Integer, nullable=True)
    cancel_date = Column(String(32), nullable=True)

    # Remote portal identity and raw status (PENDING | PAYMENT_WAIT | CONFIRMED | CANCELLED)
    sto_reqst_sn = Column(String(32), nullable=True, unique=True, index=True)
    remote_status = Column(String(16), nullable=True)
    remote_created_at = Column(Date, nullable=True)

    # Remote detail fields
    special_note = Column(Text, nullable=True)
    user_type = Column(String(128), nullable=True)
    discount_rate = Column(Integer, nullable=True)
    company_phone = Column(String(64), nullable=True)
    bank_account = Column(String(256), nullable=True)
    business_license = Column(String(256), nullable=True)
    business_license_url = Column(String(512), nullable=True)
    receipt_type = Column(String(64), nullable=True)
    business_number = Column(String(32), nullable=True)
    has_no_show = Column(Boolean, nullable=True)
    no_show_memo = Column(Text, nullable=True)
    studio_usage_method = Column(Text, nullable=True)
    file_delivery_method = Column(Text, nullable=True)
    pre_meeting_contact = Column(Text, nullable=True)
    other_inquiry = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
