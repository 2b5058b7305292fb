"""
LLM-based intent classification.

Every call returns an IntentResult. Output that does not match the declared
schema is rejected in favour of a safe ask_question fallback.
"""

import logging
import time
from typing import Optional, Sequence

from meeting_assistant.config import settings
from meeting_assistant.infra.claude import TextCompletionProvider, get_claude_client
from meeting_assistant.core.intelligence.parsing import parse_json_object
from .types import Intent, IntentHints, IntentResult

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5


CLASSIFICATION_PROMPT = """You classify user intents for a meeting scheduling assistant.

Classify the user's message into exactly ONE of these intents:
- schedule_new: User wants to schedule a new meeting
- modify_existing: User wants to modify a previously discussed meeting
- ask_question: User is asking a question about scheduling or availability
- clarify: User is providing additional information or clarification
- cancel: User wants to cancel a meeting or stop the process
- confirm: User is confirming an action ("Yes", "Go ahead", "Looks good")
- select_slot: User is choosing one of the proposed time slots ("The first one", "Slot 2")

If the user is selecting a slot, put the slot number they chose in extractedData.slotId
("the first one" -> "1", "option 3" -> "3").

## Previous conversation

{history}

## Current user message

"{message}"

## Response

Respond with ONLY valid JSON:
{{
    "intent": "<one of the intents above>",
    "confidence": <0.0-1.0>,
    "context": "<short reason for the classification>",
    "extractedData": {{
        "slotId": "<slot number or null>",
        "subject": "<meeting subject or null>",
        "attendees": ["<email or name>"],
        "date": "<date text or null>",
        "time": "<time text or null>",
        "duration": <minutes or null>
    }}
}}"""


class IntentClassifier:
    """LLM-based intent classifier with a never-raise contract."""

    def __init__(self, llm_client: Optional[TextCompletionProvider] = None):
        """Initialize classifier.

        Args:
            llm_client: Optional completion provider (for testing)
        """
        self._client = llm_client

    async def _get_client(self) -> TextCompletionProvider:
        """Get or create completion client."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def classify(
        self,
        message: str,
        history: Optional[Sequence[str]] = None,
    ) -> IntentResult:
        """
        Classify a user message.

        Args:
            message: User's message
            history: Prior "User: ..." / "Assistant: ..." lines

        Returns:
            IntentResult; the ask_question fallback on any failure
        """
        message = message.strip()
        start_time = time.time()

        if not message:
            return self._fallback("Empty message")

        prompt = CLASSIFICATION_PROMPT.format(
            history=self._format_history(history),
            message=message,
        )

        try:
            client = await self._get_client()
            response = await client.complete(prompt)
        except Exception as e:
            logger.error(f"Intent classification call failed: {e}")
            return self._fallback(f"Classifier unavailable: {e}")

        result = self._parse_response(response)
        result.processing_time_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Classified intent: {result.intent.value} "
            f"(confidence: {result.confidence:.2f}, fallback: {result.fallback_used})"
        )
        return result

    def _format_history(self, history: Optional[Sequence[str]]) -> str:
        if not history:
            return "No previous context"
        return "\n".join(history[-settings.history_context_lines:])

    def _parse_response(self, response: str) -> IntentResult:
        """Validate the model's JSON against the intent schema."""
        try:
            data = parse_json_object(response)
        except ValueError as e:
            logger.warning(f"Unparseable classifier output: {e}\nResponse: {response}")
            return self._fallback("Could not parse classifier output", raw=response)

        intent_str = data.get("intent")
        try:
            intent = Intent(str(intent_str).strip().lower())
        except ValueError:
            logger.warning(f"Classifier returned unknown intent {intent_str!r}")
            return self._fallback(f"Unrecognized intent {intent_str!r}", raw=response)

        confidence = data.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            return self._fallback("Missing or non-numeric confidence", raw=response)
        if not 0.0 <= confidence <= 1.0:
            return self._fallback(f"Confidence {confidence} outside [0, 1]", raw=response)

        hints = None
        extracted = data.get("extractedData")
        if isinstance(extracted, dict):
            hints = IntentHints.from_dict(extracted)
        elif extracted is not None:
            return self._fallback("extractedData is not an object", raw=response)

        context = data.get("context")
        return IntentResult(
            intent=intent,
            confidence=float(confidence),
            context=context if isinstance(context, str) else None,
            extracted_data=hints,
            raw_response=response,
        )

    def _fallback(self, reason: str, raw: Optional[str] = None) -> IntentResult:
        return IntentResult(
            intent=Intent.ASK_QUESTION,
            confidence=FALLBACK_CONFIDENCE,
            context=f"Fallback classification: {reason}",
            raw_response=raw,
            fallback_used=True,
        )


# Singleton
_classifier: Optional[IntentClassifier] = None


async def get_intent_classifier() -> IntentClassifier:
    """Get singleton IntentClassifier."""
    global _classifier
    if _classifier is None:
        _classifier = IntentClassifier()
    return _classifier


async def classify_intent(
    message: str,
    history: Optional[Sequence[str]] = None,
) -> IntentResult:
    """Convenience function to classify intent."""
    classifier = await get_intent_classifier()
    return await classifier.classify(message, history)
