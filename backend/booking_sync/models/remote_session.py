"""Single row (id=1) holding the remote portal session so it survives restarts. Cleared rows keep the timestamps."""
from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.sql import func

from booking_sync.db.base import Base

REMOTE_SESSION_ROW_ID = 1


class RemoteSessionRecord(Base):
    __tablename__ = "remote_sessions"

    id = Column(Integer, primary_key=True)
    cookies = Column(Text, nullable=False, default="")  # "name=value; name2=value2"
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_keepalive_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
