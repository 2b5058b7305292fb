"""Shared fixtures: a fixed clock, a time window policy and an in-memory calendar."""

from datetime import datetime, time, timezone
from typing import Optional, Sequence

import pytest

from meeting_assistant.core.intelligence.slots.types import MeetingRequest
from meeting_assistant.core.scheduling.calendar_client import (
    CalendarProvider,
    CalendarProviderError,
)
from meeting_assistant.core.scheduling.time_window import TimeWindowPolicy
from meeting_assistant.core.scheduling.types import (
    Attendee,
    BusyInterval,
    EventRef,
    TimeSlot,
    overlaps,
)

# Tuesday 2026-10-20, 11:30 IST
NOW = datetime(2026, 10, 20, 6, 0, tzinfo=timezone.utc)


def utc(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_policy(now: datetime = NOW) -> TimeWindowPolicy:
    return TimeWindowPolicy(
        utc_offset_minutes=330,
        open_time=time(10, 0),
        close_time=time(21, 0),
        timezone_label="IST",
        clock=lambda: now,
    )


class FakeCalendar(CalendarProvider):
    """In-memory CalendarProvider that records every call."""

    def __init__(
        self,
        directory: Optional[dict] = None,
        busy: Optional[dict] = None,
        candidates: Optional[Sequence[TimeSlot]] = None,
    ):
        self.directory = {k.lower(): v for k, v in (directory or {}).items()}
        self.busy: dict[str, list[BusyInterval]] = busy or {}
        self.candidates = list(candidates or [])

        self.busy_calls: list[tuple] = []
        self.candidate_calls: list[dict] = []
        self.resolve_calls: list[str] = []
        self.events: list[dict] = []

        self.fail_busy = False
        self.fail_create = False

    async def find_busy_intervals(self, user_ids, start, end):
        self.busy_calls.append((list(user_ids), start, end))
        if self.fail_busy:
            raise CalendarProviderError("calendar down", status_code=503)
        return {
            user: [
                i for i in self.busy.get(user, [])
                if overlaps(start, end, i.start, i.end)
            ]
            for user in user_ids
        }

    async def find_candidate_slots(
        self,
        organizer,
        attendees,
        window,
        duration_minutes,
        max_candidates,
    ):
        self.candidate_calls.append({
            "organizer": organizer,
            "attendees": list(attendees),
            "window": window,
            "duration_minutes": duration_minutes,
            "max_candidates": max_candidates,
        })
        return list(self.candidates)[:max_candidates]

    async def create_event(
        self,
        organizer: str,
        request: MeetingRequest,
        slot: TimeSlot,
        attendees: Optional[Sequence[Attendee]] = None,
    ) -> EventRef:
        if self.fail_create:
            raise CalendarProviderError("event creation failed", status_code=500)
        event = EventRef(event_id=f"evt-{len(self.events) + 1}")
        self.events.append({
            "organizer": organizer,
            "request": request,
            "slot": slot,
            "attendees": list(attendees or []),
            "event": event,
        })
        return event

    async def resolve_user_by_name(self, name_or_email: str) -> Optional[str]:
        self.resolve_calls.append(name_or_email)
        return self.directory.get(name_or_email.strip().lower())


@pytest.fixture
def policy() -> TimeWindowPolicy:
    """Policy pinned to NOW, IST business hours 10:00-21:00."""
    return make_policy()


@pytest.fixture
def fake_calendar() -> FakeCalendar:
    """Calendar with two internal users and nobody busy."""
    return FakeCalendar(
        directory={
            "priya": "priya@acme.com",
            "priya@acme.com": "priya@acme.com",
            "rahul": "rahul@acme.com",
            "rahul@acme.com": "rahul@acme.com",
        }
    )
