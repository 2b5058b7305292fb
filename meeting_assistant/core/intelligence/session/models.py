"""
Session data models.

A ConversationSession holds everything a multi-turn scheduling conversation
needs between messages. It serializes to JSON for the Redis store.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from meeting_assistant.core.intelligence.intent.types import Intent
from meeting_assistant.core.intelligence.slots.types import MeetingRequest
from meeting_assistant.core.scheduling.types import TimeSlot


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class PendingBooking:
    """A booking waiting for the user's confirmation."""

    request: MeetingRequest
    slot: TimeSlot
    organizer: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "slot": self.slot.to_dict(),
            "organizer": self.organizer,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingBooking":
        return cls(
            request=MeetingRequest.from_dict(data.get("request", {})),
            slot=TimeSlot.from_dict(data["slot"]),
            organizer=data.get("organizer"),
        )


@dataclass
class SessionContext:
    """Scheduling state carried between turns."""

    # "User: ..." / "Assistant: ..." lines, oldest first
    conversation_history: list[str] = field(default_factory=list)

    partial_meeting_data: Optional[MeetingRequest] = None
    proposed_slots: list[TimeSlot] = field(default_factory=list)
    pending_booking: Optional[PendingBooking] = None
    last_intent: Optional[Intent] = None

    def to_dict(self) -> dict:
        return {
            "conversation_history": list(self.conversation_history),
            "partial_meeting_data": (
                self.partial_meeting_data.to_dict()
                if self.partial_meeting_data is not None
                else None
            ),
            "proposed_slots": [s.to_dict() for s in self.proposed_slots],
            "pending_booking": (
                self.pending_booking.to_dict() if self.pending_booking else None
            ),
            "last_intent": self.last_intent.value if self.last_intent else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionContext":
        partial = data.get("partial_meeting_data")
        pending = data.get("pending_booking")
        last_intent = data.get("last_intent")
        return cls(
            conversation_history=list(data.get("conversation_history", [])),
            partial_meeting_data=(
                MeetingRequest.from_dict(partial) if partial is not None else None
            ),
            proposed_slots=[TimeSlot.from_dict(s) for s in data.get("proposed_slots", [])],
            pending_booking=PendingBooking.from_dict(pending) if pending else None,
            last_intent=Intent(last_intent) if last_intent else None,
        )


@dataclass
class ConversationSession:
    """
    Complete session data for one conversation.

    Lifecycle:
    - Created lazily on the first message for a session id
    - A successful booking clears the scheduling state but keeps history
    - Destroyed only by cancel or an explicit clear
    """

    session_id: str = field(default_factory=lambda: str(uuid4()))

    # Set once known, never cleared
    organizer_email: Optional[str] = None

    context: SessionContext = field(default_factory=SessionContext)

    # Metadata
    last_booking_id: Optional[str] = None
    message_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def history(self) -> list[str]:
        return self.context.conversation_history

    @property
    def has_pending_booking(self) -> bool:
        return self.context.pending_booking is not None

    @property
    def has_proposals(self) -> bool:
        return bool(self.context.proposed_slots)

    def remember_organizer(self, email: Optional[str]) -> None:
        """Store the organizer the first time one is known."""
        if email and not self.organizer_email:
            self.organizer_email = email

    def record_turn(self, user_message: str, assistant_response: str) -> None:
        """
        Store a complete conversation turn.

        Exactly two lines are appended: the user's message and the final
        assistant response.
        """
        self.context.conversation_history.append(f"User: {user_message}")
        self.context.conversation_history.append(f"Assistant: {assistant_response}")
        self.message_count += 1
        self.updated_at = _utcnow()

    def clear_scheduling_state(self) -> None:
        """Forget the in-progress meeting after it has been booked."""
        self.context.pending_booking = None
        self.context.partial_meeting_data = None
        self.context.proposed_slots = []

    def to_json(self) -> str:
        """Convert to JSON string for Redis storage."""
        data = {
            "session_id": self.session_id,
            "organizer_email": self.organizer_email,
            "context": self.context.to_dict(),
            "last_booking_id": self.last_booking_id,
            "message_count": self.message_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        return json.dumps(data)

    @classmethod
    def from_json(cls, json_str: str) -> "ConversationSession":
        """Create from JSON string."""
        data = json.loads(json_str)
        return cls(
            session_id=data["session_id"],
            organizer_email=data.get("organizer_email"),
            context=SessionContext.from_dict(data.get("context", {})),
            last_booking_id=data.get("last_booking_id"),
            message_count=data.get("message_count", 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return json.loads(self.to_json())
