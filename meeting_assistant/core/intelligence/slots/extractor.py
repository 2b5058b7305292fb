"""
LLM-based meeting detail extraction.

Extracts: attendees, subject, start/end time (UTC) and duration.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Optional, Sequence

from meeting_assistant.config import settings
from meeting_assistant.infra.claude import TextCompletionProvider, get_claude_client
from meeting_assistant.core.intelligence.parsing import parse_json_object
from meeting_assistant.core.scheduling.time_window import (
    TimeWindowPolicy,
    get_time_window_policy,
)
from .types import REQUIRED_FIELDS, ExtractedMeeting, MeetingRequest, parse_datetime

logger = logging.getLogger(__name__)


EXTRACTION_PROMPT = """You extract meeting details from natural language.

Current date and time in {tz_label}: {now_local}
Current date: {today}

## Previous conversation

{history}

## Current user message

"{message}"

## What to Extract

- subject: Meeting title or subject
- attendees: Email addresses of attendees (or names if no email is given)
- startTime: Start time in ISO 8601, converted to UTC
- endTime: End time in ISO 8601, converted to UTC
- duration: Duration in minutes, if stated

## Timezone rules

- All times the user mentions are in {tz_label} (UTC{offset})
- Convert {tz_label} to UTC for startTime and endTime
- "today" means {today}
- "tomorrow" means {tomorrow}

## Response

Respond with ONLY valid JSON (omit fields you cannot confidently extract):
{{
    "subject": "<meeting subject>",
    "attendees": ["<email or name>"],
    "startTime": "<YYYY-MM-DDTHH:MM:SSZ>",
    "endTime": "<YYYY-MM-DDTHH:MM:SSZ>",
    "duration": <minutes>,
    "confidence": <0.0-1.0>
}}"""


CLARIFYING_QUESTIONS = {
    "attendees": "Who should I invite to the meeting? You can give me names or email addresses.",
    "start_time": "When would you like to meet? Please tell me the date and start time ({tz_label}).",
    "duration": "How long should the meeting be?",
}


class SlotExtractor:
    """LLM-based extraction of meeting details."""

    def __init__(
        self,
        llm_client: Optional[TextCompletionProvider] = None,
        policy: Optional[TimeWindowPolicy] = None,
    ):
        """Initialize extractor.

        Args:
            llm_client: Optional completion provider (for testing)
            policy: Time window policy supplying the clock and timezone
        """
        self._client = llm_client
        self.policy = policy or get_time_window_policy()

    async def _get_client(self) -> TextCompletionProvider:
        """Get or create completion client."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def extract(
        self,
        message: str,
        history: Optional[Sequence[str]] = None,
    ) -> ExtractedMeeting:
        """
        Extract meeting details from a user message.

        Args:
            message: User's message
            history: Prior "User: ..." / "Assistant: ..." lines

        Returns:
            ExtractedMeeting; an empty request on any failure
        """
        message = message.strip()
        start_time = time.time()

        if not message:
            return ExtractedMeeting()

        prompt = self._build_prompt(message, history)

        try:
            client = await self._get_client()
            response = await client.complete(prompt)
        except Exception as e:
            logger.error(f"Meeting extraction call failed: {e}")
            return ExtractedMeeting()

        result = self._parse_response(response)
        result.processing_time_ms = (time.time() - start_time) * 1000

        logger.debug(
            f"Extracted meeting: attendees={result.request.attendees}, "
            f"start={result.request.start_time}, missing={result.missing_fields}"
        )
        return result

    def _build_prompt(self, message: str, history: Optional[Sequence[str]]) -> str:
        """Build extraction prompt anchored to the current local date."""
        now_local = self.policy.to_local(self.policy.now())
        today = now_local.date()
        offset = now_local.strftime("%z")

        history_text = (
            "\n".join(history[-settings.history_context_lines:])
            if history
            else "No previous context"
        )
        return EXTRACTION_PROMPT.format(
            tz_label=self.policy.timezone_label,
            offset=f"{offset[:3]}:{offset[3:]}",
            now_local=now_local.isoformat(timespec="minutes"),
            today=today.isoformat(),
            tomorrow=(today + timedelta(days=1)).isoformat(),
            history=history_text,
            message=message,
        )

    def _parse_response(self, response: str) -> ExtractedMeeting:
        """Parse LLM JSON response into a MeetingRequest."""
        try:
            data = parse_json_object(response)
        except ValueError as e:
            logger.error(f"Failed to parse: {e}\nResponse: {response}")
            return ExtractedMeeting(raw_response=response)

        attendees = data.get("attendees") or []
        if isinstance(attendees, str):
            attendees = [attendees]
        if not isinstance(attendees, list):
            attendees = []

        subject = data.get("subject")
        if not isinstance(subject, str) or not subject.strip():
            subject = None

        start = self._parse_timestamp(data.get("startTime", data.get("start_time")))
        end = self._parse_timestamp(data.get("endTime", data.get("end_time")))

        duration = data.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
            duration = None
        else:
            duration = int(duration)

        if start is not None and end is None and duration:
            end = start + timedelta(minutes=duration)

        confidence = data.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = 0.0

        return ExtractedMeeting(
            request=MeetingRequest(
                attendees=attendees,
                subject=subject.strip() if subject else None,
                start_time=start,
                end_time=end,
                duration=duration,
            ),
            confidence=min(max(float(confidence), 0.0), 1.0),
            raw_response=response,
        )

    def _parse_timestamp(self, value) -> Optional[datetime]:
        if not value or not isinstance(value, str):
            return None
        try:
            return parse_datetime(value.strip())
        except ValueError:
            logger.warning(f"Invalid timestamp format: {value}")
            return None

    def generate_clarifying_question(self, missing_fields: Sequence[str]) -> str:
        """Ask for the most important missing fact."""
        for name in REQUIRED_FIELDS:
            if name in missing_fields:
                return CLARIFYING_QUESTIONS[name].format(
                    tz_label=self.policy.timezone_label
                )
        return "Could you tell me a bit more about the meeting you'd like to schedule?"


# Singleton
_extractor: Optional[SlotExtractor] = None


async def get_slot_extractor() -> SlotExtractor:
    """Get singleton SlotExtractor."""
    global _extractor
    if _extractor is None:
        _extractor = SlotExtractor()
    return _extractor


async def extract_meeting(
    message: str,
    history: Optional[Sequence[str]] = None,
) -> ExtractedMeeting:
    """Convenience function to extract meeting details."""
    extractor = await get_slot_extractor()
    return await extractor.extract(message, history)
