"""
SyncGate: should a sync run now?

Scheduled runs need both: inside operating hours (local time, inclusive at minute resolution)
and at least interval_minutes since the last recorded sync. Manual runs skip the interval
check only; force skips both.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from booking_sync.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class SyncTrigger(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: str | None = None


class SyncGate:
    def __init__(
        self,
        store: SessionStore,
        *,
        start: time = time(9, 0),
        end: time = time(18, 0),
        tz: str = "Asia/Seoul",
        interval_minutes: int = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._start = start
        self._end = end
        self._tz = ZoneInfo(tz)
        self._interval_minutes = interval_minutes
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def local_now(self, now: datetime | None = None) -> datetime:
        now = now or self._now()
        if now.tzinfo is None:
            return now.replace(tzinfo=self._tz)
        return now.astimezone(self._tz)

    def is_operating_hours(self, now: datetime | None = None) -> bool:
        """09:00 and 18:00 are inside; 08:59 and 18:01 are outside (seconds ignored)."""
        local = self.local_now(now).time().replace(second=0, microsecond=0)
        return self._start <= local <= self._end

    def should_sync(self, interval_minutes: int | None = None, now: datetime | None = None) -> bool:
        """True when no sync is recorded or the last one is at least interval_minutes old."""
        interval = timedelta(minutes=self._interval_minutes if interval_minutes is None else interval_minutes)
        last = self._store.last_sync_at()
        if last is None:
            return True
        return (now or self._now()) - last >= interval

    def authorize(self, trigger: SyncTrigger, force: bool = False, now: datetime | None = None) -> GateDecision:
        now = now or self._now()
        if force:
            return GateDecision(True)
        if not self.is_operating_hours(now):
            return GateDecision(False, "outside operating hours")
        if trigger is SyncTrigger.SCHEDULED and not self.should_sync(now=now):
            return GateDecision(False, "synced recently")
        return GateDecision(True)
