"""Meeting detail extraction module."""

from .types import ExtractedMeeting, MeetingRequest, REQUIRED_FIELDS
from .extractor import (
    SlotExtractor,
    get_slot_extractor,
    extract_meeting,
)

__all__ = [
    # Types
    "ExtractedMeeting",
    "MeetingRequest",
    "REQUIRED_FIELDS",
    # Extractor
    "SlotExtractor",
    "get_slot_extractor",
    "extract_meeting",
]
