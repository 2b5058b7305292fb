"""
Scheduling Engine - Main Orchestrator.

Coordinates all components to process user messages and manage the complete
scheduling conversation: classification, extraction, availability checks,
slot selection, confirmation and booking.
"""

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from meeting_assistant.config import settings
from meeting_assistant.core.intelligence.intent.classifier import (
    IntentClassifier,
    get_intent_classifier,
)
from meeting_assistant.core.intelligence.intent.types import IntentResult
from meeting_assistant.core.intelligence.session.manager import (
    SessionManager,
    get_session_manager,
)
from meeting_assistant.core.intelligence.session.models import (
    ConversationSession,
    PendingBooking,
)
from meeting_assistant.core.intelligence.slots.extractor import (
    SlotExtractor,
    get_slot_extractor,
)
from meeting_assistant.core.intelligence.slots.types import MeetingRequest
from .availability import AvailabilityReconciler, get_availability_reconciler
from .booking import BookingExecutor, get_booking_executor
from .calendar_client import CalendarProvider, CalendarProviderError, get_calendar_client
from .flow import ConversationFlow, FlowAction, FlowActionType, get_conversation_flow
from .response import ResponseGenerator, get_response_generator
from .time_window import InvalidTimeWindowError

logger = logging.getLogger(__name__)


@dataclass
class EngineResponse:
    """Response from scheduling engine."""

    response_text: str
    session_id: str
    intent: Optional[IntentResult] = None
    meeting_data: Optional[MeetingRequest] = None

    # The turn produced a complete meeting request
    is_complete: bool = False

    # A booking is waiting for the user's confirmation
    requires_scheduling: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "response": self.response_text,
            "session_id": self.session_id,
            "is_complete": self.is_complete,
            "requires_scheduling": self.requires_scheduling,
        }

        if self.intent:
            result["intent"] = self.intent.to_dict()
        if self.meeting_data:
            result["meeting_data"] = self.meeting_data.to_dict()

        return result


@dataclass
class TurnContext:
    """Mutable state for one turn, shared by the action handlers."""

    session: ConversationSession
    message: str
    organizer: Optional[str]
    intent: Optional[IntentResult] = None
    meeting_data: Optional[MeetingRequest] = None
    is_complete: bool = False


Handler = Callable[[TurnContext, FlowAction], Awaitable[str]]


class SchedulingEngine:
    """
    Main orchestrator for the meeting assistant.

    Coordinates:
    - Intent classification
    - Meeting detail extraction
    - Session management
    - Availability checks and alternatives
    - Booking
    - Response generation
    """

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[SlotExtractor] = None,
        session_manager: Optional[SessionManager] = None,
        calendar: Optional[CalendarProvider] = None,
        reconciler: Optional[AvailabilityReconciler] = None,
        booking: Optional[BookingExecutor] = None,
        response_generator: Optional[ResponseGenerator] = None,
        flow_manager: Optional[ConversationFlow] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            classifier: Intent classifier
            extractor: Meeting detail extractor
            session_manager: Session manager
            calendar: Calendar provider used for name resolution
            reconciler: Availability reconciler
            booking: Booking executor
            response_generator: Response generator
            flow_manager: Conversation flow manager
        """
        self._classifier = classifier
        self._extractor = extractor
        self._session_manager = session_manager
        self._calendar = calendar
        self._reconciler = reconciler
        self._booking = booking
        self._response_generator = response_generator
        self._flow_manager = flow_manager

        self._handlers: dict[FlowActionType, Handler] = {
            FlowActionType.COLLECT: self._handle_collect,
            FlowActionType.BOOK: self._handle_book,
            FlowActionType.CLARIFY_CONFIRMATION: self._handle_clarify_confirmation,
            FlowActionType.SELECT_SLOT: self._handle_select_slot,
            FlowActionType.CLARIFY_SELECTION: self._handle_clarify_selection,
            FlowActionType.RESTART: self._handle_restart,
            FlowActionType.ACKNOWLEDGE_MODIFY: self._handle_modify,
            FlowActionType.ANSWER_QUESTION: self._handle_question,
            FlowActionType.CANCEL: self._handle_cancel,
            FlowActionType.UNKNOWN: self._handle_unknown,
        }

    # === Dependencies ===

    async def _get_classifier(self) -> IntentClassifier:
        if self._classifier is None:
            self._classifier = await get_intent_classifier()
        return self._classifier

    async def _get_extractor(self) -> SlotExtractor:
        if self._extractor is None:
            self._extractor = await get_slot_extractor()
        return self._extractor

    async def _get_session_manager(self) -> SessionManager:
        if self._session_manager is None:
            self._session_manager = await get_session_manager()
        return self._session_manager

    def _get_calendar(self) -> CalendarProvider:
        if self._calendar is None:
            self._calendar = get_calendar_client()
        return self._calendar

    def _get_reconciler(self) -> AvailabilityReconciler:
        if self._reconciler is None:
            self._reconciler = get_availability_reconciler()
        return self._reconciler

    def _get_booking(self) -> BookingExecutor:
        if self._booking is None:
            self._booking = get_booking_executor()
        return self._booking

    def _get_response_generator(self) -> ResponseGenerator:
        if self._response_generator is None:
            self._response_generator = get_response_generator()
        return self._response_generator

    def _get_flow_manager(self) -> ConversationFlow:
        if self._flow_manager is None:
            self._flow_manager = get_conversation_flow()
        return self._flow_manager

    # === Turn processing ===

    async def process(
        self,
        session_id: str,
        message: str,
        organizer_email: Optional[str] = None,
    ) -> EngineResponse:
        """Process a user message.

        Turns for the same session run one at a time.

        Args:
            session_id: Conversation identifier
            message: User's message
            organizer_email: Signed-in user, if known

        Returns:
            EngineResponse with the assistant's reply
        """
        sessions = await self._get_session_manager()

        async with sessions.lock(session_id):
            try:
                session = await sessions.get_or_create(session_id)
            except Exception as e:
                logger.error(f"Session {session_id}: could not load session: {e}", exc_info=True)
                return EngineResponse(
                    response_text=self._get_response_generator().error(),
                    session_id=session_id,
                )

            session.remember_organizer(organizer_email)

            turn = TurnContext(
                session=session,
                message=message,
                organizer=(
                    organizer_email
                    or session.organizer_email
                    or settings.default_organizer_email
                ),
            )
            action: Optional[FlowAction] = None

            try:
                classifier = await self._get_classifier()
                turn.intent = await classifier.classify(message, session.history)
                session.context.last_intent = turn.intent.intent

                action = self._get_flow_manager().decide(session, turn.intent)
                logger.info(
                    f"Session {session_id}: intent={turn.intent.intent.value} "
                    f"action={action.action_type.value}"
                )

                handler = self._handlers[action.action_type]
                response_text = await handler(turn, action)

            except Exception as e:
                logger.error(f"Error processing message: {e}", exc_info=True)
                action = None
                response_text = self._get_response_generator().error()

            if action is not None and action.action_type == FlowActionType.CANCEL:
                return EngineResponse(
                    response_text=response_text,
                    session_id=session_id,
                    intent=turn.intent,
                )

            session.record_turn(message, response_text)
            try:
                await sessions.save(session)
            except Exception as e:
                logger.error(f"Session {session_id}: could not save session: {e}", exc_info=True)
                return EngineResponse(
                    response_text=self._get_response_generator().error(),
                    session_id=session_id,
                    intent=turn.intent,
                )

            return EngineResponse(
                response_text=response_text,
                session_id=session_id,
                intent=turn.intent,
                meeting_data=turn.meeting_data,
                is_complete=turn.is_complete,
                requires_scheduling=session.has_pending_booking,
            )

    # === Handlers ===

    async def _handle_collect(self, turn: TurnContext, action: FlowAction) -> str:
        """Merge newly extracted details and check availability once complete."""
        session = turn.session
        extractor = await self._get_extractor()

        extracted = await extractor.extract(turn.message, session.history)
        newer = await self._resolve_attendee_names(extracted.request)

        previous = session.context.partial_meeting_data
        merged = (previous or MeetingRequest()).merge(newer)
        if merged != previous:
            # Anything on offer was for the old details
            session.context.pending_booking = None
            session.context.proposed_slots = []
        session.context.partial_meeting_data = merged
        turn.meeting_data = merged

        if not merged.is_complete:
            return extractor.generate_clarifying_question(merged.missing_fields())

        turn.is_complete = True
        return await self._check_and_propose(turn, merged)

    async def _check_and_propose(self, turn: TurnContext, request: MeetingRequest) -> str:
        session = turn.session
        responses = self._get_response_generator()

        if not turn.organizer:
            logger.warning(f"Session {session.session_id}: no organizer known")
            return responses.organizer_unknown()

        session.context.pending_booking = None
        session.context.proposed_slots = []

        try:
            result = await self._get_reconciler().check_and_propose(turn.organizer, request)
        except InvalidTimeWindowError as e:
            return responses.invalid_window(e.message)
        except CalendarProviderError as e:
            logger.error(f"Availability check failed: {e}")
            return responses.calendar_unavailable()

        if not result.busy:
            session.context.pending_booking = PendingBooking(
                request=request.copy(),
                slot=result.proposal,
                organizer=turn.organizer,
            )
            return responses.slot_available(
                result.proposal, external_count=len(result.external_attendees)
            )

        session.context.proposed_slots = list(result.alternatives)
        return responses.alternatives(
            result.alternatives, external_count=len(result.external_attendees)
        )

    async def _resolve_attendee_names(self, request: MeetingRequest) -> MeetingRequest:
        """Replace display names with directory addresses where they resolve."""
        if not any("@" not in a for a in request.attendees):
            return request

        calendar = self._get_calendar()
        resolved = []
        for attendee in request.attendees:
            if "@" in attendee:
                resolved.append(attendee)
                continue
            try:
                email = await calendar.resolve_user_by_name(attendee)
            except CalendarProviderError as e:
                logger.warning(f"Could not resolve attendee {attendee!r}: {e}")
                email = None
            resolved.append(email or attendee)

        return replace(request, attendees=resolved)

    async def _handle_book(self, turn: TurnContext, action: FlowAction) -> str:
        """Execute the booking awaiting confirmation."""
        session = turn.session
        pending = session.context.pending_booking
        organizer = turn.organizer or pending.organizer
        turn.meeting_data = pending.request
        turn.is_complete = True

        if not organizer:
            return self._get_response_generator().organizer_unknown()

        result = await self._get_booking().execute(organizer, pending.request, pending.slot)
        if result.success:
            session.last_booking_id = result.event_id
            session.clear_scheduling_state()
        return result.message

    async def _handle_select_slot(self, turn: TurnContext, action: FlowAction) -> str:
        """Turn the chosen proposal into a booking awaiting confirmation."""
        session = turn.session
        slot = action.slot

        request = (session.context.partial_meeting_data or MeetingRequest()).copy()
        request.start_time = slot.start
        request.end_time = slot.end
        request.duration = slot.duration_minutes

        session.context.pending_booking = PendingBooking(
            request=request,
            slot=slot,
            organizer=turn.organizer,
        )
        turn.meeting_data = request
        turn.is_complete = request.is_complete
        return self._get_response_generator().slot_selected(slot)

    async def _handle_clarify_confirmation(self, turn: TurnContext, action: FlowAction) -> str:
        return self._get_response_generator().nothing_to_confirm()

    async def _handle_clarify_selection(self, turn: TurnContext, action: FlowAction) -> str:
        return self._get_response_generator().which_slot()

    async def _handle_restart(self, turn: TurnContext, action: FlowAction) -> str:
        return self._get_response_generator().no_proposals()

    async def _handle_modify(self, turn: TurnContext, action: FlowAction) -> str:
        return self._get_response_generator().modify_acknowledged()

    async def _handle_question(self, turn: TurnContext, action: FlowAction) -> str:
        return await self._get_response_generator().answer_question(
            turn.message, turn.session.history
        )

    async def _handle_cancel(self, turn: TurnContext, action: FlowAction) -> str:
        sessions = await self._get_session_manager()
        await sessions.delete(turn.session.session_id)
        return self._get_response_generator().cancelled()

    async def _handle_unknown(self, turn: TurnContext, action: FlowAction) -> str:
        return self._get_response_generator().not_understood()

    # === Session access ===

    async def get_session(self, session_id: str) -> Optional[ConversationSession]:
        """Get the stored session, for debugging and inspection."""
        sessions = await self._get_session_manager()
        return await sessions.get(session_id)

    async def clear_session(self, session_id: str) -> bool:
        """Delete a session.

        Returns:
            True if a session was deleted
        """
        sessions = await self._get_session_manager()
        async with sessions.lock(session_id):
            return await sessions.delete(session_id)


# Singleton
_engine: Optional[SchedulingEngine] = None


def get_scheduling_engine() -> SchedulingEngine:
    """Get singleton SchedulingEngine."""
    global _engine
    if _engine is None:
        _engine = SchedulingEngine()
    return _engine


async def process_message(
    session_id: str,
    message: str,
    organizer_email: Optional[str] = None,
) -> EngineResponse:
    """Convenience function to process a message.

    Args:
        session_id: Conversation identifier
        message: User's message
        organizer_email: Signed-in user, if known

    Returns:
        EngineResponse
    """
    engine = get_scheduling_engine()
    return await engine.process(session_id, message, organizer_email)
