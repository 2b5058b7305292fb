"""Calendar value types shared by the scheduling layer and session storage."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

# Statuses reported by the calendar; everything except "free" blocks time
BUSY_STATUSES = ("busy", "tentative", "oof", "workingElsewhere")

_NAME_ADDR = re.compile(r"^\s*(?P<name>.*?)\s*<\s*(?P<email>[^<>\s]+@[^<>\s]+)\s*>\s*$")


def to_utc(value) -> datetime:
    """Coerce a datetime or ISO 8601 string to an aware UTC datetime."""
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open interval overlap: back-to-back windows do not conflict."""
    return start < other_end and other_start < end


@dataclass(frozen=True)
class TimeSlot:
    """A concrete meeting window, optionally ranked as an alternative."""

    start: datetime
    end: datetime
    rank: Optional[int] = None  # 1-based
    reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return overlaps(self.start, self.end, start, end)

    @classmethod
    def from_dict(cls, data: dict) -> "TimeSlot":
        """Create from API response or session dict."""
        return cls(
            start=data.get("start", data.get("start_time")),
            end=data.get("end", data.get("end_time")),
            rank=data.get("rank"),
            reason=data.get("reason"),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        result = {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }
        if self.rank is not None:
            result["rank"] = self.rank
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass(frozen=True)
class BusyInterval:
    """A span on someone's calendar."""

    start: datetime
    end: datetime
    status: str = "busy"

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))

    @property
    def blocks_time(self) -> bool:
        """Tentative and out-of-office count as busy."""
        return self.status != "free"

    @classmethod
    def from_dict(cls, data: dict) -> "BusyInterval":
        return cls(
            start=data["start"],
            end=data["end"],
            status=data.get("status", "busy"),
        )


@dataclass(frozen=True)
class Attendee:
    """Invitee as sent to the calendar."""

    email: str
    name: Optional[str] = None
    type: str = "required"

    @classmethod
    def parse(cls, value: str) -> "Attendee":
        """Parse 'Name <a@b.com>' or a bare address; addresses are lower-cased."""
        match = _NAME_ADDR.match(value)
        if match:
            name = match.group("name").strip().strip('"') or None
            return cls(email=match.group("email").lower(), name=name)
        return cls(email=value.strip().lower())

    def to_dict(self) -> dict:
        result = {"email": self.email, "type": self.type}
        if self.name:
            result["name"] = self.name
        return result


@dataclass
class EventRef:
    """Reference to a created calendar event."""

    event_id: str
    web_link: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "EventRef":
        return cls(
            event_id=str(data.get("event_id", data.get("id", ""))),
            web_link=data.get("web_link", data.get("webLink")),
        )
