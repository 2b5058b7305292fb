"""
Response Generator for the meeting assistant.

Template responses for every scheduling step, plus an LLM answer for
free-form questions with a fallback template for reliability.
"""

import logging
from typing import Optional, Sequence

from meeting_assistant.infra.claude import TextCompletionProvider, get_claude_client
from .time_window import TimeWindowPolicy, get_time_window_policy
from .types import TimeSlot

logger = logging.getLogger(__name__)


QUESTION_PROMPT = """You are a helpful meeting scheduling assistant. Answer the following question about meeting scheduling:

Question: {question}

Context from conversation:
{history}

Provide a helpful, concise answer."""

QUESTION_FALLBACK = (
    "I can help you schedule meetings. Tell me who should attend, when, "
    "and for how long, and I'll check everyone's availability."
)


class ResponseGenerator:
    """
    Builds the assistant's replies.

    Everything is template-based except answers to open questions, which use
    the completion provider and fall back to a fixed reply if it fails.
    """

    # Lines of history given to the question prompt
    QUESTION_CONTEXT_LINES = 5

    def __init__(
        self,
        llm_client: Optional[TextCompletionProvider] = None,
        policy: Optional[TimeWindowPolicy] = None,
    ):
        """Initialize generator.

        Args:
            llm_client: Completion provider (uses singleton if not provided)
            policy: Time window policy used to format times
        """
        self._client = llm_client
        self.policy = policy or get_time_window_policy()

    async def _get_client(self) -> TextCompletionProvider:
        """Get completion client."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    def format_time(self, slot_time) -> str:
        return self.policy.format_time(slot_time)

    # === Availability ===

    def external_note(self, external_count: int) -> str:
        """Line explaining attendees whose calendars could not be checked."""
        if external_count <= 0:
            return ""
        noun = "attendee" if external_count == 1 else "attendees"
        return (
            f"I couldn't check availability for {external_count} external {noun}; "
            "they'll still be invited."
        )

    def slot_available(self, slot: TimeSlot, external_count: int = 0) -> str:
        if not external_count:
            return (
                f"Good news! The slot {self.format_time(slot.start)} is available "
                "for all attendees. Shall I schedule it?"
            )
        return (
            f"Good news! The slot {self.format_time(slot.start)} is available "
            f"for all internal attendees. {self.external_note(external_count)} "
            "Shall I schedule it?"
        )

    def alternatives(self, slots: Sequence[TimeSlot], external_count: int = 0) -> str:
        note = self.external_note(external_count)
        if not slots:
            text = (
                "That time is busy, and I couldn't find any immediate alternatives. "
                "Could you propose a different time?"
            )
            return f"{text}\n{note}" if note else text

        lines = ["That time doesn't work for everyone. Here are some alternatives:"]
        for index, slot in enumerate(slots, start=1):
            lines.append(f"{index}. {self.format_time(slot.start)}")
        lines.append("")
        if note:
            lines.append(note)
        lines.append("Which one would you like?")
        return "\n".join(lines)

    def slot_selected(self, slot: TimeSlot) -> str:
        return (
            f"You selected: {self.format_time(slot.start)} to "
            f"{self.format_time(slot.end)}. Shall I schedule this?"
        )

    def invalid_window(self, message: str) -> str:
        return message

    def organizer_unknown(self) -> str:
        return (
            "I can help with that, but I need to know who is organizing the meeting first. "
            "Please sign in or tell me your email address."
        )

    def calendar_unavailable(self) -> str:
        return (
            "I couldn't reach the calendar service to check availability. "
            "Please try again in a moment."
        )

    # === Clarifications ===

    def nothing_to_confirm(self) -> str:
        return "I'm not sure what you're confirming. Could you clarify?"

    def which_slot(self) -> str:
        return "Which slot would you like? You can say 'the first one' or 'slot 1'."

    def no_proposals(self) -> str:
        return "I don't have any proposed slots to select from. Let's start over."

    def modify_acknowledged(self) -> str:
        return "I'll help you modify the meeting. What would you like to change?"

    def cancelled(self) -> str:
        return "Okay, I've cancelled the scheduling process. Let me know if you need anything else!"

    def not_understood(self) -> str:
        return "I'm not sure I understand. Could you please clarify what you'd like to do?"

    def error(self) -> str:
        return "I'm sorry, something went wrong on my side. Could you say that again?"

    # === Questions ===

    async def answer_question(
        self,
        question: str,
        history: Optional[Sequence[str]] = None,
    ) -> str:
        """Answer a free-form question grounded in recent conversation.

        Args:
            question: The user's question
            history: Conversation lines

        Returns:
            Answer text, or a fixed fallback if the provider fails
        """
        recent = list(history or [])[-self.QUESTION_CONTEXT_LINES:]
        prompt = QUESTION_PROMPT.format(
            question=question,
            history="\n".join(recent) if recent else "No previous context",
        )

        try:
            client = await self._get_client()
            answer = (await client.complete(prompt)).strip()
        except Exception as e:
            logger.warning(f"LLM question answering failed: {e}")
            return QUESTION_FALLBACK

        return answer or QUESTION_FALLBACK


# Singleton
_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get singleton ResponseGenerator."""
    global _generator
    if _generator is None:
        _generator = ResponseGenerator()
    return _generator
