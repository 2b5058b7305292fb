"""Intent types for conversation classification."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    """What the user is trying to do in this turn."""

    # Scheduling actions
    SCHEDULE_NEW = "schedule_new"          # Book a new meeting
    MODIFY_EXISTING = "modify_existing"    # Change a meeting discussed earlier

    # Conversation flow
    CLARIFY = "clarify"                    # Supplying missing details
    CONFIRM = "confirm"                    # "Yes", "go ahead"
    SELECT_SLOT = "select_slot"            # "The first one", "slot 2"

    # Other
    ASK_QUESTION = "ask_question"          # Question about scheduling/availability
    CANCEL = "cancel"                      # Stop the process


@dataclass
class IntentHints:
    """Typed hints the classifier may extract alongside the intent.

    Only slot_id drives behaviour today; the remaining fields are kept for
    logging and future use.
    """

    slot_id: Optional[str] = None
    subject: Optional[str] = None
    attendees: list[str] = field(default_factory=list)
    date: Optional[str] = None
    time: Optional[str] = None
    duration: Optional[int] = None

    @property
    def slot_ordinal(self) -> Optional[int]:
        """1-based slot ordinal from the first number in slot_id, if any."""
        if not self.slot_id:
            return None
        match = re.search(r"\d+", str(self.slot_id))
        return int(match.group()) if match else None

    @classmethod
    def from_dict(cls, data: dict) -> "IntentHints":
        """Build from the model's extractedData object, ignoring bad fields."""
        attendees = data.get("attendees") or []
        if not isinstance(attendees, list):
            attendees = []

        duration = data.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            duration = None

        slot_id = data.get("slotId", data.get("slot_id"))
        return cls(
            slot_id=str(slot_id) if slot_id is not None else None,
            subject=data.get("subject") if isinstance(data.get("subject"), str) else None,
            attendees=[str(a) for a in attendees],
            date=data.get("date") if isinstance(data.get("date"), str) else None,
            time=data.get("time") if isinstance(data.get("time"), str) else None,
            duration=int(duration) if duration is not None else None,
        )

    def to_dict(self) -> dict:
        """Convert to dict, excluding empty values."""
        result = {}
        if self.slot_id is not None:
            result["slotId"] = self.slot_id
        if self.subject:
            result["subject"] = self.subject
        if self.attendees:
            result["attendees"] = list(self.attendees)
        if self.date:
            result["date"] = self.date
        if self.time:
            result["time"] = self.time
        if self.duration is not None:
            result["duration"] = self.duration
        return result


@dataclass
class IntentResult:
    """Result of intent classification."""

    intent: Intent
    confidence: float  # 0.0 - 1.0

    # Why the model (or the fallback) chose this intent
    context: Optional[str] = None

    # None means "no hint available"
    extracted_data: Optional[IntentHints] = None

    # Raw LLM output for debugging
    raw_response: Optional[str] = None

    # True when the model output was rejected and the safe default used
    fallback_used: bool = False

    processing_time_ms: float = 0.0

    @property
    def is_high_confidence(self) -> bool:
        """Check if classification is high confidence."""
        return self.confidence >= 0.7

    @property
    def slot_ordinal(self) -> Optional[int]:
        if self.extracted_data is None:
            return None
        return self.extracted_data.slot_ordinal

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "context": self.context,
            "extracted_data": self.extracted_data.to_dict() if self.extracted_data else None,
            "fallback_used": self.fallback_used,
            "processing_time_ms": self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IntentResult":
        """Create from to_dict() output."""
        hints = data.get("extracted_data")
        return cls(
            intent=Intent(data["intent"]),
            confidence=float(data.get("confidence", 0.0)),
            context=data.get("context"),
            extracted_data=IntentHints.from_dict(hints) if hints else None,
            fallback_used=data.get("fallback_used", False),
            processing_time_ms=data.get("processing_time_ms", 0.0),
        )
