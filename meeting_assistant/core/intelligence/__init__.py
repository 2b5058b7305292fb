"""
Intelligence Layer Module

Provides intent classification, meeting detail extraction and session
management for the meeting assistant.

Usage:
    from meeting_assistant.core.intelligence import (
        classify_intent,
        extract_meeting,
        get_session_manager,
    )

    # Classify intent
    result = await classify_intent("Set up a call with priya@acme.com tomorrow")
    print(result.intent)  # Intent.SCHEDULE_NEW

    # Extract meeting details
    meeting = await extract_meeting("Tomorrow at 3pm for 30 minutes with Priya")
    print(meeting.missing_fields)  # []

    # Session management
    manager = await get_session_manager()
    session = await manager.get_or_create("session-123")
"""

# Intent Classification
from meeting_assistant.core.intelligence.intent.types import Intent, IntentHints, IntentResult
from meeting_assistant.core.intelligence.intent.classifier import (
    IntentClassifier,
    get_intent_classifier,
    classify_intent,
)

# Meeting Extraction
from meeting_assistant.core.intelligence.slots.types import ExtractedMeeting, MeetingRequest
from meeting_assistant.core.intelligence.slots.extractor import (
    SlotExtractor,
    get_slot_extractor,
    extract_meeting,
)

# Session Management
from meeting_assistant.core.intelligence.session.models import (
    ConversationSession,
    PendingBooking,
    SessionContext,
)
from meeting_assistant.core.intelligence.session.manager import (
    SessionManager,
    get_session_manager,
)

__all__ = [
    # Intent
    "Intent",
    "IntentHints",
    "IntentResult",
    "IntentClassifier",
    "get_intent_classifier",
    "classify_intent",
    # Meeting extraction
    "ExtractedMeeting",
    "MeetingRequest",
    "SlotExtractor",
    "get_slot_extractor",
    "extract_meeting",
    # Sessions
    "ConversationSession",
    "PendingBooking",
    "SessionContext",
    "SessionManager",
    "get_session_manager",
]
