"""Booking execution against the calendar provider."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from meeting_assistant.core.intelligence.slots.types import MeetingRequest
from .calendar_client import CalendarProvider, get_calendar_client
from .time_window import TimeWindowPolicy, get_time_window_policy
from .types import Attendee, TimeSlot

logger = logging.getLogger(__name__)

BOOKING_FAILED_MESSAGE = (
    "I encountered an error while scheduling the meeting. Please try again later."
)


@dataclass
class BookingResult:
    """Result of a booking attempt."""

    success: bool
    event_id: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None


def normalize_attendees(attendees: Iterable[str]) -> list[Attendee]:
    """Parse attendee strings into Attendee records, dropping duplicate addresses."""
    seen = set()
    result = []
    for value in attendees:
        if not value or not value.strip():
            continue
        attendee = Attendee.parse(value)
        if attendee.email in seen:
            continue
        seen.add(attendee.email)
        result.append(attendee)
    return result


class BookingExecutor:
    """Creates the calendar event for a confirmed booking. Never raises."""

    def __init__(
        self,
        calendar: Optional[CalendarProvider] = None,
        policy: Optional[TimeWindowPolicy] = None,
    ):
        self.calendar = calendar or get_calendar_client()
        self.policy = policy or get_time_window_policy()

    async def execute(
        self,
        organizer: str,
        request: MeetingRequest,
        slot: TimeSlot,
    ) -> BookingResult:
        """
        Book the slot.

        Args:
            organizer: Organizer address
            request: Meeting details
            slot: Window to book

        Returns:
            BookingResult; failures carry a user-facing message
        """
        attendees = normalize_attendees(request.attendees)

        try:
            event = await self.calendar.create_event(
                organizer,
                request,
                slot,
                attendees=attendees,
            )
        except Exception as e:
            logger.error(f"Failed to schedule meeting for {organizer}: {e}")
            return BookingResult(
                success=False,
                message=BOOKING_FAILED_MESSAGE,
                error_code="booking_failed",
            )

        logger.info(
            f"Booked event {event.event_id} for {organizer} "
            f"({len(attendees)} attendees) at {slot.start.isoformat()}"
        )
        return BookingResult(
            success=True,
            event_id=event.event_id,
            message=(
                f"Meeting scheduled successfully for {self.policy.format_time(slot.start)}! "
                "I've sent invites to all attendees."
            ),
        )


# Singleton
_executor: Optional[BookingExecutor] = None


def get_booking_executor() -> BookingExecutor:
    """Get singleton BookingExecutor."""
    global _executor
    if _executor is None:
        _executor = BookingExecutor()
    return _executor
