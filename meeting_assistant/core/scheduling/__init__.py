"""
Scheduling Module

Provides the time window policy, calendar integration, availability
reconciliation, booking and response generation. The orchestrator lives in
``meeting_assistant.core.scheduling.engine`` and the per-intent decision
table in ``meeting_assistant.core.scheduling.flow``.

Usage:
    from meeting_assistant.core.scheduling.engine import process_message

    # Process a chat message
    response = await process_message(
        session_id="session-123",
        message="Book 30 minutes with Priya tomorrow at 3pm",
        organizer_email="me@acme.com",
    )
    print(response.response_text)  # Assistant's reply
    print(response.requires_scheduling)  # Waiting for confirmation?
"""

# Time Window Policy
from meeting_assistant.core.scheduling.time_window import (
    InvalidTimeWindowError,
    TimeWindowPolicy,
    WindowCheck,
    WindowViolation,
    get_time_window_policy,
)

# Calendar types
from meeting_assistant.core.scheduling.types import (
    Attendee,
    BusyInterval,
    EventRef,
    TimeSlot,
)

# Calendar Client
from meeting_assistant.core.scheduling.calendar_client import (
    CalendarAgentClient,
    CalendarProvider,
    CalendarProviderError,
    get_calendar_client,
)

# Availability
from meeting_assistant.core.scheduling.availability import (
    AvailabilityReconciler,
    AvailabilityResult,
    get_availability_reconciler,
)

# Booking
from meeting_assistant.core.scheduling.booking import (
    BookingExecutor,
    BookingResult,
    get_booking_executor,
)

# Response Generator
from meeting_assistant.core.scheduling.response import (
    ResponseGenerator,
    get_response_generator,
)

__all__ = [
    # Time window
    "InvalidTimeWindowError",
    "TimeWindowPolicy",
    "WindowCheck",
    "WindowViolation",
    "get_time_window_policy",
    # Types
    "Attendee",
    "BusyInterval",
    "EventRef",
    "TimeSlot",
    # Calendar Client
    "CalendarAgentClient",
    "CalendarProvider",
    "CalendarProviderError",
    "get_calendar_client",
    # Availability
    "AvailabilityReconciler",
    "AvailabilityResult",
    "get_availability_reconciler",
    # Booking
    "BookingExecutor",
    "BookingResult",
    "get_booking_executor",
    # Response Generator
    "ResponseGenerator",
    "get_response_generator",
]
