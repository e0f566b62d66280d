"""
Durable copy of the remote portal session (remote_sessions, single row id=1).

SessionManager keeps the in-process copy; this store is the tie-breaker after a restart.
Also holds the last sync / keep-alive timestamps that SyncGate reads.

Writes report failure as False (logged) rather than raising: losing a timestamp or a
persisted cookie degrades to "log in again", it does not break the caller's run.
"""
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from booking_sync.models.remote_session import REMOTE_SESSION_ROW_ID, RemoteSessionRecord
from booking_sync.services.remote.types import RemoteSession

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_aware(dt: datetime | None) -> datetime | None:
    """sqlite hands back naive datetimes; everything we store is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Load/save/extend/clear the persisted session and its sync timestamps."""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] | None = None) -> None:
        self._session_factory = session_factory
        self._now = clock or utcnow

    def _row(self, db: Session, create: bool = False) -> RemoteSessionRecord | None:
        row = db.get(RemoteSessionRecord, REMOTE_SESSION_ROW_ID)
        if row is None and create:
            row = RemoteSessionRecord(id=REMOTE_SESSION_ROW_ID, cookies="", expires_at=_EPOCH)
            db.add(row)
        return row

    def load(self) -> RemoteSession | None:
        """Stored session if it has cookies and is unexpired, else None."""
        db = self._session_factory()
        try:
            row = self._row(db)
            if row is None or not (row.cookies or "").strip():
                logger.debug("No stored remote session")
                return None
            expires_at = as_aware(row.expires_at)
            if expires_at <= self._now():
                logger.info("Stored remote session expired at %s", expires_at.isoformat())
                return None
            logger.info("Loaded remote session from DB, expires %s", expires_at.isoformat())
            return RemoteSession(cookie_jar=row.cookies, expires_at=expires_at, is_logged_in=True)
        except SQLAlchemyError as e:
            logger.warning("Loading remote session failed: %s", e)
            return None
        finally:
            db.close()

    def save(self, session: RemoteSession) -> bool:
        db = self._session_factory()
        try:
            row = self._row(db, create=True)
            row.cookies = session.cookie_jar
            row.expires_at = session.expires_at
            db.commit()
            logger.info("Saved remote session, expires %s", session.expires_at.isoformat())
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Saving remote session failed: %s", e)
            return False
        finally:
            db.close()

    def extend_expiry(self, expires_at: datetime, keepalive_at: datetime | None = None) -> bool:
        """Move expiry forward only (never backwards); optionally stamp the keep-alive time."""
        db = self._session_factory()
        try:
            row = self._row(db)
            if row is None:
                return False
            current = as_aware(row.expires_at)
            if current is None or expires_at > current:
                row.expires_at = expires_at
            if keepalive_at is not None:
                row.last_keepalive_at = keepalive_at
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Extending remote session expiry failed: %s", e)
            return False
        finally:
            db.close()

    def record_sync(self, at: datetime | None = None) -> bool:
        db = self._session_factory()
        try:
            row = self._row(db, create=True)
            row.last_sync_at = at or self._now()
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Recording sync time failed: %s", e)
            return False
        finally:
            db.close()

    def last_sync_at(self) -> datetime | None:
        db = self._session_factory()
        try:
            row = self._row(db)
            return as_aware(row.last_sync_at) if row is not None else None
        except SQLAlchemyError as e:
            logger.warning("Reading last sync time failed: %s", e)
            return None
        finally:
            db.close()

    def clear(self) -> bool:
        """Drop cookies and set expiry to the past. Timestamps are kept for the gate."""
        db = self._session_factory()
        try:
            row = self._row(db)
            if row is None:
                return True
            row.cookies = ""
            row.expires_at = _EPOCH
            db.commit()
            logger.info("Cleared stored remote session")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Clearing remote session failed: %s", e)
            return False
        finally:
            db.close()

    def snapshot(self) -> dict:
        """Stored state for status endpoints (no cookie values)."""
        db = self._session_factory()
        try:
            row = self._row(db)
            if row is None:
                return {"has_session": False, "expires_at": None, "last_sync_at": None, "last_keepalive_at": None}
            expires_at = as_aware(row.expires_at)
            return {
                "has_session": bool((row.cookies or "").strip()) and expires_at > self._now(),
                "expires_at": expires_at.isoformat() if expires_at else None,
                "last_sync_at": as_aware(row.last_sync_at).isoformat() if row.last_sync_at else None,
                "last_keepalive_at": as_aware(row.last_keepalive_at).isoformat() if row.last_keepalive_at else None,
            }
        finally:
            db.close()
