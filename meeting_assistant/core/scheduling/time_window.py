"""
Time Window Policy.

Business-hours and "not in the past" rules for meeting windows. All
fixed-offset timezone arithmetic lives here so the rest of the scheduler
only ever handles aware UTC datetimes.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from meeting_assistant.config import settings

logger = logging.getLogger(__name__)


class WindowViolation(str, Enum):
    """Why a requested window cannot be booked."""

    START_TOO_EARLY = "start_too_early"          # Before now / before hours open
    END_NOT_AFTER_START = "end_not_after_start"
    END_AFTER_CUTOFF = "end_after_cutoff"        # Runs past business hours


class InvalidTimeWindowError(ValueError):
    """Raised when a requested meeting window violates the policy."""

    def __init__(self, violation: WindowViolation, message: str):
        super().__init__(message)
        self.violation = violation
        self.message = message


@dataclass(frozen=True)
class WindowCheck:
    """Outcome of checking a window against the policy."""

    ok: bool
    violation: Optional[WindowViolation] = None
    message: Optional[str] = None


def _parse_hhmm(value: str) -> time:
    hours, _, minutes = value.partition(":")
    return time(hour=int(hours), minute=int(minutes))


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimeWindowPolicy:
    """
    Business-hours policy in a single fixed UTC offset.

    Windows are half-open [start, end). A request is bookable when:
    - start >= effective earliest start (max of now and hours-open that day)
    - end > start
    - end <= business-hours close on the start's local day
    """

    def __init__(
        self,
        utc_offset_minutes: Optional[int] = None,
        open_time: Optional[time] = None,
        close_time: Optional[time] = None,
        timezone_label: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize policy.

        Args:
            utc_offset_minutes: Fixed offset of local time (defaults to settings)
            open_time: Local time the bookable window opens
            close_time: Local time the bookable window closes
            timezone_label: Display name of the offset, e.g. "IST"
            clock: Returns the current time (for testing)
        """
        offset = (
            settings.timezone_offset_minutes
            if utc_offset_minutes is None
            else utc_offset_minutes
        )
        self.tz = timezone(timedelta(minutes=offset), timezone_label or settings.timezone_label)
        self.timezone_label = timezone_label or settings.timezone_label
        self.open_time = open_time or _parse_hhmm(settings.business_hours_start)
        self.close_time = close_time or _parse_hhmm(settings.business_hours_end)
        if self.close_time <= self.open_time:
            raise ValueError("Business hours must close after they open")
        self._clock = clock

    def now(self) -> datetime:
        """Current time as aware UTC."""
        if self._clock is not None:
            return ensure_utc(self._clock())
        return datetime.now(timezone.utc)

    # === Conversions ===

    def to_local(self, value: datetime) -> datetime:
        return ensure_utc(value).astimezone(self.tz)

    def local_date(self, value: datetime) -> date:
        return self.to_local(value).date()

    def day_start(self, day: date) -> datetime:
        """Local midnight of a day, as UTC."""
        return datetime.combine(day, time.min, tzinfo=self.tz).astimezone(timezone.utc)

    def window_open(self, day: date) -> datetime:
        return datetime.combine(day, self.open_time, tzinfo=self.tz).astimezone(timezone.utc)

    def window_close(self, day: date) -> datetime:
        return datetime.combine(day, self.close_time, tzinfo=self.tz).astimezone(timezone.utc)

    def format_time(self, value: datetime) -> str:
        """Display a timestamp in local time, e.g. 'Oct 20, 2026, 02:00 PM IST'."""
        local = self.to_local(value)
        return f"{local.strftime('%b %d, %Y, %I:%M %p')} {self.timezone_label}"

    # === Policy ===

    def clamp_search_window(self, day: date) -> tuple[datetime, datetime]:
        """Bookable window for a local calendar day, as UTC (start, end)."""
        return self.window_open(day), self.window_close(day)

    def effective_earliest_start(self, day: date, now: datetime) -> datetime:
        """Earliest bookable start on a day: now for today, hours-open for later days."""
        return max(ensure_utc(now), self.window_open(day))

    def check_window(
        self,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> WindowCheck:
        """Check a window, returning the first violated constraint."""
        start = ensure_utc(start)
        end = ensure_utc(end)
        now = ensure_utc(now) if now is not None else self.now()
        day = self.local_date(start)

        earliest = self.effective_earliest_start(day, now)
        if start < earliest:
            if start < now:
                message = (
                    "The start time has already passed. "
                    "Please pick a time later than now."
                )
            else:
                message = (
                    f"Meetings can't start before {self.open_time.strftime('%I:%M %p')} "
                    f"{self.timezone_label}. Please pick a later start time."
                )
            return WindowCheck(False, WindowViolation.START_TOO_EARLY, message)

        if end <= start:
            return WindowCheck(
                False,
                WindowViolation.END_NOT_AFTER_START,
                "The end time must be after the start time.",
            )

        cutoff = self.window_close(day)
        if end > cutoff:
            return WindowCheck(
                False,
                WindowViolation.END_AFTER_CUTOFF,
                f"Meetings must end by {self.close_time.strftime('%I:%M %p')} "
                f"{self.timezone_label}. Please pick an earlier time or a shorter meeting.",
            )

        return WindowCheck(True)

    def is_within_bookable_window(
        self,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> bool:
        return self.check_window(start, end, now).ok

    def validate_window(
        self,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> None:
        """Raise InvalidTimeWindowError if the window is not bookable."""
        check = self.check_window(start, end, now)
        if not check.ok:
            logger.info(f"Rejected window {start} - {end}: {check.violation.value}")
            raise InvalidTimeWindowError(check.violation, check.message)


# Singleton
_policy: Optional[TimeWindowPolicy] = None


def get_time_window_policy() -> TimeWindowPolicy:
    """Get singleton TimeWindowPolicy."""
    global _policy
    if _policy is None:
        _policy = TimeWindowPolicy()
    return _policy
