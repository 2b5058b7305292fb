"""Slot types for meeting extraction."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

# Required facts, most important first
REQUIRED_FIELDS = ("attendees", "start_time", "duration")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # fromisoformat only accepts a trailing Z from 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return _as_utc(datetime.fromisoformat(value))


def dedupe_attendees(attendees: Iterable[str]) -> list[str]:
    """Strip blanks and drop repeats (case-insensitive), keeping first-seen order."""
    seen = set()
    result = []
    for attendee in attendees:
        if not isinstance(attendee, str):
            continue
        attendee = attendee.strip()
        key = attendee.lower()
        if not attendee or key in seen:
            continue
        seen.add(key)
        result.append(attendee)
    return result


@dataclass
class MeetingRequest:
    """What we know so far about the meeting the user wants."""

    # Emails or display names, in the order given
    attendees: list[str] = field(default_factory=list)
    subject: Optional[str] = None

    # Aware UTC datetimes
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    duration: Optional[int] = None  # minutes

    def __post_init__(self):
        self.attendees = dedupe_attendees(self.attendees)
        self.start_time = _as_utc(self.start_time)
        self.end_time = _as_utc(self.end_time)
        if (
            not self.duration
            and self.start_time is not None
            and self.end_time is not None
            and self.end_time > self.start_time
        ):
            self.duration = int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def is_complete(self) -> bool:
        """Attendees, a start and an end (or duration) are all known."""
        return not self.missing_fields()

    @property
    def resolved_end_time(self) -> Optional[datetime]:
        if self.end_time is not None:
            return self.end_time
        if self.start_time is not None and self.duration:
            return self.start_time + timedelta(minutes=self.duration)
        return None

    @property
    def duration_minutes(self) -> Optional[int]:
        """Duration, derived from start and end when not stated."""
        if self.duration:
            return self.duration
        if self.start_time is not None and self.end_time is not None:
            return int((self.end_time - self.start_time).total_seconds() // 60)
        return None

    def has_any(self) -> bool:
        """Check if any field is known."""
        return any([
            self.attendees,
            self.subject,
            self.start_time,
            self.end_time,
            self.duration,
        ])

    def missing_fields(self) -> list[str]:
        """Missing required facts in priority order."""
        missing = []
        if not self.attendees:
            missing.append("attendees")
        if self.start_time is None:
            missing.append("start_time")
        if self.end_time is None and not self.duration:
            missing.append("duration")
        return missing

    def merge(self, newer: "MeetingRequest") -> "MeetingRequest":
        """
        Merge with a newer extraction.

        Non-empty fields of newer overwrite; empty fields never erase what is
        already known. The end time is then reconciled with start and duration.
        """
        merged = MeetingRequest(
            attendees=newer.attendees or self.attendees,
            subject=newer.subject or self.subject,
            start_time=newer.start_time or self.start_time,
            end_time=newer.end_time or self.end_time,
            duration=newer.duration or self.duration,
        )

        start_or_length_changed = (
            newer.start_time is not None or bool(newer.duration)
        )
        if (
            newer.end_time is None
            and start_or_length_changed
            and merged.start_time is not None
            and merged.duration
        ):
            merged.end_time = merged.start_time + timedelta(minutes=merged.duration)
        elif (
            merged.start_time is not None
            and merged.end_time is not None
            and (not merged.duration or newer.end_time is not None)
            and merged.end_time > merged.start_time
        ):
            merged.duration = int(
                (merged.end_time - merged.start_time).total_seconds() // 60
            )

        return merged

    def copy(self) -> "MeetingRequest":
        return replace(self, attendees=list(self.attendees))

    def to_dict(self) -> dict:
        """Convert to dict, excluding empty values."""
        result = {}
        if self.attendees:
            result["attendees"] = list(self.attendees)
        if self.subject:
            result["subject"] = self.subject
        if self.start_time:
            result["start_time"] = self.start_time.isoformat()
        if self.end_time:
            result["end_time"] = self.end_time.isoformat()
        if self.duration:
            result["duration"] = self.duration
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "MeetingRequest":
        return cls(
            attendees=list(data.get("attendees") or []),
            subject=data.get("subject"),
            start_time=parse_datetime(data.get("start_time")),
            end_time=parse_datetime(data.get("end_time")),
            duration=data.get("duration"),
        )


@dataclass
class ExtractedMeeting:
    """A MeetingRequest extracted from one message, with extraction metadata."""

    request: MeetingRequest = field(default_factory=MeetingRequest)
    confidence: float = 0.0

    # Raw LLM output for debugging
    raw_response: str = ""
    processing_time_ms: float = 0.0

    @property
    def missing_fields(self) -> list[str]:
        return self.request.missing_fields()

    @property
    def is_complete(self) -> bool:
        return self.request.is_complete
