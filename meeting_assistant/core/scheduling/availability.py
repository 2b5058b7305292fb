"""
Availability reconciliation.

Checks a complete meeting request against attendee calendars and, when the
requested window is taken, proposes ranked alternatives that have been
re-validated locally.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from meeting_assistant.config import settings
from meeting_assistant.core.intelligence.slots.types import MeetingRequest
from .calendar_client import CalendarProvider, get_calendar_client
from .time_window import TimeWindowPolicy, get_time_window_policy
from .types import BusyInterval, TimeSlot, overlaps

logger = logging.getLogger(__name__)

# Ranking buckets, best first
NEAR_REQUESTED = 0
SAME_DAY = 1
LATER = 2


@dataclass
class AvailabilityResult:
    """Outcome of checking a requested window."""

    busy: bool
    alternatives: list[TimeSlot] = field(default_factory=list)

    # The requested window, when it is free
    proposal: Optional[TimeSlot] = None

    internal_attendees: list[str] = field(default_factory=list)
    external_attendees: list[str] = field(default_factory=list)


class AvailabilityReconciler:
    """Decides whether a requested window is free and proposes alternatives."""

    def __init__(
        self,
        calendar: Optional[CalendarProvider] = None,
        policy: Optional[TimeWindowPolicy] = None,
        max_alternatives: Optional[int] = None,
        search_days: Optional[int] = None,
        max_candidates: Optional[int] = None,
        near_window_minutes: Optional[int] = None,
    ):
        self.calendar = calendar or get_calendar_client()
        self.policy = policy or get_time_window_policy()
        self.max_alternatives = max_alternatives or settings.max_alternatives
        self.search_days = search_days or settings.alternative_search_days
        self.max_candidates = max_candidates or settings.max_candidate_slots
        self.near_window = timedelta(
            minutes=near_window_minutes or settings.near_time_window_minutes
        )

    async def split_attendees(
        self,
        attendees: Iterable[str],
    ) -> tuple[list[str], list[str]]:
        """
        Split attendees by directory membership.

        Returns:
            (internal, external). Internal entries are directory addresses;
            external entries are kept as given.
        """
        internal: list[str] = []
        external: list[str] = []
        for attendee in attendees:
            resolved = await self.calendar.resolve_user_by_name(attendee)
            if resolved:
                if resolved.lower() not in (i.lower() for i in internal):
                    internal.append(resolved)
            else:
                external.append(attendee)

        logger.info(f"Internal attendees: {len(internal)}, External attendees: {len(external)}")
        if external:
            logger.info(
                f"External attendees will be invited without an availability check: "
                f"{', '.join(external)}"
            )
        return internal, external

    async def check_and_propose(
        self,
        organizer: str,
        request: MeetingRequest,
    ) -> AvailabilityResult:
        """
        Check the requested window and propose alternatives if it is busy.

        Args:
            organizer: Organizer address
            request: A complete meeting request

        Returns:
            AvailabilityResult

        Raises:
            InvalidTimeWindowError: If the requested window breaks business rules
            CalendarProviderError: If the calendar cannot be queried
        """
        start = request.start_time
        end = request.resolved_end_time
        if start is None or end is None:
            raise ValueError("Meeting request has no start or end time")

        now = self.policy.now()
        self.policy.validate_window(start, end, now)

        internal, external = await self.split_attendees(request.attendees)

        if not internal:
            logger.info("No internal attendees, skipping free/busy check")
            return AvailabilityResult(
                busy=False,
                proposal=TimeSlot(start=start, end=end),
                internal_attendees=internal,
                external_attendees=external,
            )

        schedules = await self.calendar.find_busy_intervals(internal, start, end)
        conflicts = self._conflicting(start, end, schedules)

        if not conflicts:
            logger.info(f"Requested slot {start.isoformat()} is free for all internal attendees")
            return AvailabilityResult(
                busy=False,
                proposal=TimeSlot(start=start, end=end),
                internal_attendees=internal,
                external_attendees=external,
            )

        logger.info(f"Requested slot is busy for: {', '.join(sorted(conflicts))}")
        alternatives = await self.find_alternatives(
            organizer,
            internal,
            start,
            int((end - start).total_seconds() // 60),
            now,
        )
        return AvailabilityResult(
            busy=True,
            alternatives=alternatives,
            internal_attendees=internal,
            external_attendees=external,
        )

    def _conflicting(
        self,
        start: datetime,
        end: datetime,
        schedules: dict[str, list[BusyInterval]],
    ) -> set[str]:
        """Users with a blocking interval overlapping [start, end)."""
        return {
            user_id
            for user_id, intervals in schedules.items()
            if any(
                i.blocks_time and overlaps(start, end, i.start, i.end)
                for i in intervals
            )
        }

    async def find_alternatives(
        self,
        organizer: str,
        internal: Sequence[str],
        requested_start: datetime,
        duration_minutes: int,
        now: datetime,
    ) -> list[TimeSlot]:
        """
        Ranked alternatives near the requested start.

        Candidates from the calendar are not trusted: each one is re-checked
        against a fresh free/busy query, the business-hours policy and now.
        """
        day = self.policy.local_date(requested_start)
        window_start = max(now, self.policy.day_start(day))
        window_end = window_start + timedelta(days=self.search_days)

        candidates = await self.calendar.find_candidate_slots(
            organizer,
            internal,
            (window_start, window_end),
            duration_minutes,
            self.max_candidates,
        )
        if not candidates:
            logger.info("Calendar returned no candidate slots")
            return []

        schedules = await self.calendar.find_busy_intervals(internal, window_start, window_end)
        blocking = [
            i for intervals in schedules.values() for i in intervals if i.blocks_time
        ]

        seen = set()
        valid: list[TimeSlot] = []
        for slot in candidates:
            key = (slot.start, slot.end)
            if key in seen:
                continue
            seen.add(key)

            if not self.policy.is_within_bookable_window(slot.start, slot.end, now):
                continue
            if any(overlaps(slot.start, slot.end, i.start, i.end) for i in blocking):
                continue
            valid.append(slot)

        logger.debug(f"{len(valid)} of {len(candidates)} candidate slots survived validation")
        return self.rank_slots(valid, requested_start)

    def rank_slots(
        self,
        slots: Sequence[TimeSlot],
        requested_start: datetime,
    ) -> list[TimeSlot]:
        """Order by closeness to the requested start and keep the best few."""
        requested_day = self.policy.local_date(requested_start)

        def bucket(slot: TimeSlot) -> int:
            if abs(slot.start - requested_start) <= self.near_window:
                return NEAR_REQUESTED
            if self.policy.local_date(slot.start) == requested_day:
                return SAME_DAY
            return LATER

        ordered = sorted(
            slots,
            key=lambda s: (bucket(s), abs(s.start - requested_start), s.start),
        )

        return [
            replace(slot, rank=rank, reason=self._reason(bucket(slot), slot))
            for rank, slot in enumerate(ordered[: self.max_alternatives], start=1)
        ]

    def _reason(self, bucket: int, slot: TimeSlot) -> str:
        if bucket == NEAR_REQUESTED:
            return "Close to your requested time"
        if bucket == SAME_DAY:
            return "Same day as requested"
        local = self.policy.to_local(slot.start)
        return f"Next availability on {local.strftime('%a, %b %d')}"


# Singleton
_reconciler: Optional[AvailabilityReconciler] = None


def get_availability_reconciler() -> AvailabilityReconciler:
    """Get singleton AvailabilityReconciler."""
    global _reconciler
    if _reconciler is None:
        _reconciler = AvailabilityReconciler()
    return _reconciler
