"""
Conversation Flow Manager.

Decides what a turn should do from the classified intent and the session's
scheduling state. The decision table covers every Intent; the engine then
maps each FlowActionType to a handler.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from meeting_assistant.core.intelligence.intent.types import Intent, IntentResult
from meeting_assistant.core.intelligence.session.models import ConversationSession
from .types import TimeSlot

logger = logging.getLogger(__name__)


class FlowActionType(str, Enum):
    """What the engine should do this turn."""

    COLLECT = "collect"                              # Extract, merge, check availability
    BOOK = "book"                                    # Execute the pending booking
    CLARIFY_CONFIRMATION = "clarify_confirmation"    # Confirm with nothing pending
    SELECT_SLOT = "select_slot"                      # Valid choice among proposals
    CLARIFY_SELECTION = "clarify_selection"          # Proposals exist, choice unclear
    RESTART = "restart"                              # Selection with no proposals
    ACKNOWLEDGE_MODIFY = "acknowledge_modify"
    ANSWER_QUESTION = "answer_question"
    CANCEL = "cancel"
    UNKNOWN = "unknown"


@dataclass
class FlowAction:
    """Action determined by flow manager."""

    action_type: FlowActionType
    slot: Optional[TimeSlot] = None  # Chosen proposal for SELECT_SLOT
    metadata: dict = field(default_factory=dict)


Decision = Callable[[ConversationSession, IntentResult], FlowAction]


class ConversationFlow:
    """
    Decision table for scheduling conversations.

    Determines the next action based on:
    - Detected intent
    - Whether a booking is awaiting confirmation
    - Which alternatives have been proposed
    """

    def __init__(self):
        """Initialize flow manager."""
        self._decisions: dict[Intent, Decision] = {
            Intent.SCHEDULE_NEW: self._collect,
            Intent.CLARIFY: self._collect,
            Intent.CONFIRM: self._confirm,
            Intent.SELECT_SLOT: self._select_slot,
            Intent.MODIFY_EXISTING: self._modify,
            Intent.ASK_QUESTION: self._ask_question,
            Intent.CANCEL: self._cancel,
        }

    @property
    def handled_intents(self) -> frozenset:
        return frozenset(self._decisions)

    def decide(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        """Determine the action for this turn.

        Args:
            session: Current session
            intent: Classified intent

        Returns:
            FlowAction for the engine to execute
        """
        decision = self._decisions.get(intent.intent)
        if decision is None:
            logger.warning(f"No flow decision for intent {intent.intent!r}")
            return FlowAction(FlowActionType.UNKNOWN)

        action = decision(session, intent)
        logger.debug(f"Intent {intent.intent.value} -> {action.action_type.value}")
        return action

    def _collect(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        return FlowAction(FlowActionType.COLLECT)

    def _confirm(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        if session.has_pending_booking:
            return FlowAction(FlowActionType.BOOK)
        return FlowAction(FlowActionType.CLARIFY_CONFIRMATION)

    def _select_slot(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        proposals = session.context.proposed_slots
        if not proposals:
            return FlowAction(FlowActionType.RESTART)

        ordinal = intent.slot_ordinal
        if ordinal is None or not 1 <= ordinal <= len(proposals):
            # Never guess: an unclear choice is asked about, not defaulted
            return FlowAction(
                FlowActionType.CLARIFY_SELECTION,
                metadata={"ordinal": ordinal, "proposals": len(proposals)},
            )

        return FlowAction(FlowActionType.SELECT_SLOT, slot=proposals[ordinal - 1])

    def _modify(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        return FlowAction(FlowActionType.ACKNOWLEDGE_MODIFY)

    def _ask_question(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        return FlowAction(FlowActionType.ANSWER_QUESTION)

    def _cancel(self, session: ConversationSession, intent: IntentResult) -> FlowAction:
        return FlowAction(FlowActionType.CANCEL)


# Singleton
_flow: Optional[ConversationFlow] = None


def get_conversation_flow() -> ConversationFlow:
    """Get singleton ConversationFlow."""
    global _flow
    if _flow is None:
        _flow = ConversationFlow()
    return _flow
