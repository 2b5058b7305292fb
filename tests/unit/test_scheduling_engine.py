"""Tests for the scheduling engine (main orchestrator)."""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from meeting_assistant.config import settings
from meeting_assistant.core.intelligence.intent.classifier import IntentClassifier
from meeting_assistant.core.intelligence.intent.types import Intent
from meeting_assistant.core.intelligence.session.manager import (
    InMemorySessionStore,
    SessionManager,
)
from meeting_assistant.core.intelligence.slots.extractor import SlotExtractor
from meeting_assistant.core.scheduling.availability import AvailabilityReconciler
from meeting_assistant.core.scheduling.booking import (
    BOOKING_FAILED_MESSAGE,
    BookingExecutor,
)
from meeting_assistant.core.scheduling.engine import EngineResponse, SchedulingEngine
from meeting_assistant.core.scheduling.flow import ConversationFlow
from meeting_assistant.core.scheduling.response import ResponseGenerator
from meeting_assistant.core.scheduling.types import BusyInterval, TimeSlot
from meeting_assistant.infra.redis import RedisConnectionError
from tests.conftest import utc

ORGANIZER = "me@acme.com"

# Tomorrow 15:00 IST
TOMORROW_3PM = "2026-10-21T09:30:00Z"


def intent_json(intent: str, confidence: float = 0.9, **extracted) -> str:
    data = {"intent": intent, "confidence": confidence, "context": "test"}
    if extracted:
        data["extractedData"] = extracted
    return json.dumps(data)


def meeting_json(**fields) -> str:
    return json.dumps(fields)


class TestSchedulingEngine:
    """Test SchedulingEngine end to end over fakes."""

    @pytest.fixture
    def classifier_llm(self):
        return AsyncMock()

    @pytest.fixture
    def extractor_llm(self):
        return AsyncMock()

    @pytest.fixture
    def answer_llm(self):
        return AsyncMock()

    @pytest.fixture
    def reconciler(self, fake_calendar, policy):
        return AvailabilityReconciler(
            calendar=fake_calendar,
            policy=policy,
            max_alternatives=5,
            search_days=7,
            max_candidates=20,
            near_window_minutes=180,
        )

    @pytest.fixture
    def engine(self, classifier_llm, extractor_llm, answer_llm, fake_calendar, policy, reconciler):
        """Engine with real components over mocked LLMs and a fake calendar."""
        return SchedulingEngine(
            classifier=IntentClassifier(llm_client=classifier_llm),
            extractor=SlotExtractor(llm_client=extractor_llm, policy=policy),
            session_manager=SessionManager(InMemorySessionStore()),
            calendar=fake_calendar,
            reconciler=reconciler,
            booking=BookingExecutor(calendar=fake_calendar, policy=policy),
            response_generator=ResponseGenerator(llm_client=answer_llm, policy=policy),
            flow_manager=ConversationFlow(),
        )

    @pytest.fixture
    def no_default_organizer(self, monkeypatch):
        monkeypatch.setattr(settings, "default_organizer_email", None)

    # === Happy paths ===

    @pytest.mark.asyncio
    async def test_free_slot_then_confirm(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test a free slot is offered and booked on confirmation."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("confirm"),
        ]
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya"],
            startTime=TOMORROW_3PM,
            duration=30,
            subject="Roadmap sync",
        )

        first = await engine.process(
            "s-1", "Set up 30 minutes with Priya tomorrow at 3pm", ORGANIZER
        )

        assert isinstance(first, EngineResponse)
        assert first.response_text == (
            "Good news! The slot Oct 21, 2026, 03:00 PM IST is available "
            "for all attendees. Shall I schedule it?"
        )
        assert first.intent.intent == Intent.SCHEDULE_NEW
        assert first.is_complete
        assert first.requires_scheduling
        assert first.meeting_data.attendees == ["priya@acme.com"]

        # Organizer is remembered from the first turn
        second = await engine.process("s-1", "Yes, go ahead")

        assert second.response_text.startswith(
            "Meeting scheduled successfully for Oct 21, 2026, 03:00 PM IST!"
        )
        assert not second.requires_scheduling
        assert len(fake_calendar.events) == 1
        event = fake_calendar.events[0]
        assert event["organizer"] == ORGANIZER
        assert event["slot"].start == utc(2026, 10, 21, 9, 30)
        assert [a.email for a in event["attendees"]] == ["priya@acme.com"]

        session = await engine.get_session("s-1")
        assert session.last_booking_id == "evt-1"
        assert session.context.partial_meeting_data is None
        assert len(session.history) == 4
        assert session.message_count == 2

    @pytest.mark.asyncio
    async def test_busy_then_select_then_confirm(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test alternatives are offered, selected by number and booked."""
        fake_calendar.busy = {
            "priya@acme.com": [
                BusyInterval(utc(2026, 10, 21, 9, 30), utc(2026, 10, 21, 10, 0))
            ]
        }
        fake_calendar.candidates = [
            TimeSlot(start=utc(2026, 10, 21, 10, 0), end=utc(2026, 10, 21, 10, 30)),
            TimeSlot(start=utc(2026, 10, 21, 8, 30), end=utc(2026, 10, 21, 9, 0)),
        ]
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("select_slot", slotId="2"),
            intent_json("confirm"),
        ]
        extractor_llm.complete.return_value = meeting_json(
            attendees=["priya@acme.com"],
            startTime=TOMORROW_3PM,
            duration=30,
        )

        first = await engine.process("s-1", "Meet Priya tomorrow 3pm for 30 min", ORGANIZER)

        assert first.response_text.splitlines() == [
            "That time doesn't work for everyone. Here are some alternatives:",
            "1. Oct 21, 2026, 03:30 PM IST",
            "2. Oct 21, 2026, 02:00 PM IST",
            "",
            "Which one would you like?",
        ]
        assert not first.requires_scheduling

        second = await engine.process("s-1", "2", ORGANIZER)

        assert second.response_text == (
            "You selected: Oct 21, 2026, 02:00 PM IST to "
            "Oct 21, 2026, 02:30 PM IST. Shall I schedule this?"
        )
        assert second.requires_scheduling
        assert second.meeting_data.start_time == utc(2026, 10, 21, 8, 30)

        third = await engine.process("s-1", "Yes", ORGANIZER)

        assert third.response_text.startswith(
            "Meeting scheduled successfully for Oct 21, 2026, 02:00 PM IST!"
        )
        assert fake_calendar.events[0]["slot"].start == utc(2026, 10, 21, 8, 30)

    @pytest.mark.asyncio
    async def test_clarification_merges_details(
        self, engine, classifier_llm, extractor_llm
    ):
        """Test missing details are asked for and merged across turns."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("clarify"),
        ]
        extractor_llm.complete.side_effect = [
            meeting_json(attendees=["Priya"]),
            meeting_json(startTime=TOMORROW_3PM, duration=30),
        ]

        first = await engine.process("s-1", "Book a meeting with Priya", ORGANIZER)

        assert first.response_text == (
            "When would you like to meet? Please tell me the date and start time (IST)."
        )
        assert not first.is_complete

        second = await engine.process("s-1", "Tomorrow at 3 for half an hour", ORGANIZER)

        assert second.is_complete
        assert second.meeting_data.attendees == ["priya@acme.com"]
        assert second.requires_scheduling

    @pytest.mark.asyncio
    async def test_start_only_change_moves_meeting(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test a meeting given as start and end keeps its length when moved."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("clarify"),
        ]
        extractor_llm.complete.side_effect = [
            meeting_json(
                attendees=["Priya"],
                startTime="2026-10-21T08:30:00Z",
                endTime="2026-10-21T09:00:00Z",
            ),
            meeting_json(startTime="2026-10-21T10:30:00Z"),
        ]

        await engine.process("s-1", "Priya tomorrow 2 to 2:30pm", ORGANIZER)
        second = await engine.process("s-1", "Actually make it 4pm", ORGANIZER)

        assert second.response_text == (
            "Good news! The slot Oct 21, 2026, 04:00 PM IST is available "
            "for all attendees. Shall I schedule it?"
        )
        assert second.meeting_data.end_time == utc(2026, 10, 21, 11, 0)
        session = await engine.get_session("s-1")
        assert session.context.pending_booking.slot == TimeSlot(
            start=utc(2026, 10, 21, 10, 30), end=utc(2026, 10, 21, 11, 0)
        )

    @pytest.mark.asyncio
    async def test_invalid_change_drops_offer(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test an offer is withdrawn when the new details are rejected."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("clarify"),
            intent_json("confirm"),
        ]
        extractor_llm.complete.side_effect = [
            meeting_json(attendees=["Priya"], startTime=TOMORROW_3PM, duration=30),
            # 8pm for two hours runs past closing
            meeting_json(startTime="2026-10-21T14:30:00Z", duration=120),
        ]

        first = await engine.process("s-1", "Meet Priya tomorrow 3pm", ORGANIZER)
        assert first.requires_scheduling

        second = await engine.process("s-1", "Make it 8pm for 2 hours", ORGANIZER)

        assert "Meetings must end by 09:00 PM IST" in second.response_text
        assert not second.requires_scheduling

        third = await engine.process("s-1", "Yes", ORGANIZER)

        assert third.response_text == "I'm not sure what you're confirming. Could you clarify?"
        assert fake_calendar.events == []

    @pytest.mark.asyncio
    async def test_failed_recheck_drops_offer(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test an offer is withdrawn when the new time cannot be checked."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("clarify"),
            intent_json("confirm"),
        ]
        extractor_llm.complete.side_effect = [
            meeting_json(attendees=["Priya"], startTime=TOMORROW_3PM, duration=30),
            meeting_json(startTime="2026-10-21T10:30:00Z"),
        ]

        await engine.process("s-1", "Meet Priya tomorrow 3pm", ORGANIZER)
        fake_calendar.fail_busy = True

        second = await engine.process("s-1", "Move it to 4pm", ORGANIZER)

        assert second.response_text.startswith("I couldn't reach the calendar service")
        assert not second.requires_scheduling

        await engine.process("s-1", "Yes", ORGANIZER)

        assert fake_calendar.events == []

    @pytest.mark.asyncio
    async def test_external_attendee_noted(self, engine, classifier_llm, extractor_llm):
        """Test guests outside the directory are mentioned in the offer."""
        classifier_llm.complete.return_value = intent_json("schedule_new")
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya", "guest@partner.com"],
            startTime=TOMORROW_3PM,
            duration=30,
        )

        response = await engine.process("s-1", "Priya and guest@partner.com at 3", ORGANIZER)

        assert "for all internal attendees" in response.response_text
        assert "1 external attendee; they'll still be invited." in response.response_text
        assert response.requires_scheduling

    # === Conversation control ===

    @pytest.mark.asyncio
    async def test_cancel_deletes_session(self, engine, classifier_llm, extractor_llm):
        """Test cancel discards the session and nothing is recorded."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("cancel"),
        ]
        extractor_llm.complete.return_value = meeting_json(attendees=["Priya"])

        await engine.process("s-1", "Meet Priya", ORGANIZER)
        assert await engine.get_session("s-1") is not None

        response = await engine.process("s-1", "Never mind", ORGANIZER)

        assert response.response_text.startswith("Okay, I've cancelled the scheduling process.")
        assert not response.requires_scheduling
        assert await engine.get_session("s-1") is None

    @pytest.mark.asyncio
    async def test_select_without_proposals(self, engine, classifier_llm):
        """Test selecting before any alternatives were offered."""
        classifier_llm.complete.return_value = intent_json("select_slot", slotId="1")

        response = await engine.process("s-1", "The first one", ORGANIZER)

        assert response.response_text == (
            "I don't have any proposed slots to select from. Let's start over."
        )
        session = await engine.get_session("s-1")
        assert session.history == [
            "User: The first one",
            f"Assistant: {response.response_text}",
        ]

    @pytest.mark.asyncio
    async def test_confirm_with_nothing_pending(self, engine, classifier_llm, fake_calendar):
        """Test confirming with no pending booking books nothing."""
        classifier_llm.complete.return_value = intent_json("confirm")

        response = await engine.process("s-1", "Yes", ORGANIZER)

        assert response.response_text == "I'm not sure what you're confirming. Could you clarify?"
        assert fake_calendar.events == []

    @pytest.mark.asyncio
    async def test_modify_acknowledged(self, engine, classifier_llm):
        classifier_llm.complete.return_value = intent_json("modify_existing")

        response = await engine.process("s-1", "Can we move it?", ORGANIZER)

        assert "modify the meeting" in response.response_text

    # === Failures ===

    @pytest.mark.asyncio
    async def test_invalid_window(self, engine, classifier_llm, extractor_llm, fake_calendar):
        """Test a window past closing is explained and not checked."""
        classifier_llm.complete.return_value = intent_json("schedule_new")
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya"],
            startTime="2026-10-21T16:00:00Z",
            duration=30,
        )

        response = await engine.process("s-1", "Meet Priya tomorrow 9:30pm", ORGANIZER)

        assert "Meetings must end by 09:00 PM IST" in response.response_text
        assert not response.requires_scheduling
        assert fake_calendar.busy_calls == []

    @pytest.mark.asyncio
    async def test_booking_failure_keeps_pending(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test a failed booking can be retried by confirming again."""
        classifier_llm.complete.side_effect = [
            intent_json("schedule_new"),
            intent_json("confirm"),
        ]
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya"], startTime=TOMORROW_3PM, duration=30
        )
        await engine.process("s-1", "Meet Priya tomorrow 3pm", ORGANIZER)
        fake_calendar.fail_create = True

        response = await engine.process("s-1", "Yes", ORGANIZER)

        assert response.response_text == BOOKING_FAILED_MESSAGE
        assert response.requires_scheduling
        session = await engine.get_session("s-1")
        assert session.has_pending_booking
        assert session.last_booking_id is None

    @pytest.mark.asyncio
    async def test_calendar_unavailable(
        self, engine, classifier_llm, extractor_llm, fake_calendar
    ):
        """Test free/busy failures produce a retry message."""
        classifier_llm.complete.return_value = intent_json("schedule_new")
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya"], startTime=TOMORROW_3PM, duration=30
        )
        fake_calendar.fail_busy = True

        response = await engine.process("s-1", "Meet Priya tomorrow 3pm", ORGANIZER)

        assert response.response_text.startswith("I couldn't reach the calendar service")
        assert not response.requires_scheduling

    @pytest.mark.asyncio
    async def test_no_organizer(
        self, engine, classifier_llm, extractor_llm, fake_calendar, no_default_organizer
    ):
        """Test availability is not checked without an organizer."""
        classifier_llm.complete.return_value = intent_json("schedule_new")
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya"], startTime=TOMORROW_3PM, duration=30
        )

        response = await engine.process("s-1", "Meet Priya tomorrow 3pm")

        assert "who is organizing the meeting" in response.response_text
        assert fake_calendar.busy_calls == []

    @pytest.mark.asyncio
    async def test_classifier_failure_answers_question(
        self, engine, classifier_llm, answer_llm
    ):
        """Test an unavailable classifier falls back to answering."""
        classifier_llm.complete.side_effect = RuntimeError("API down")
        answer_llm.complete.return_value = "I can book meetings between 10 AM and 9 PM IST."

        response = await engine.process("s-1", "What can you do?", ORGANIZER)

        assert response.intent.intent == Intent.ASK_QUESTION
        assert response.intent.fallback_used
        assert response.response_text == "I can book meetings between 10 AM and 9 PM IST."

    @pytest.mark.asyncio
    async def test_unexpected_error_apologizes(
        self, classifier_llm, extractor_llm, answer_llm, fake_calendar, policy
    ):
        """Test an unexpected failure still answers and records the turn."""
        broken = MagicMock()
        broken.check_and_propose = AsyncMock(side_effect=RuntimeError("boom"))
        engine = SchedulingEngine(
            classifier=IntentClassifier(llm_client=classifier_llm),
            extractor=SlotExtractor(llm_client=extractor_llm, policy=policy),
            session_manager=SessionManager(InMemorySessionStore()),
            calendar=fake_calendar,
            reconciler=broken,
            booking=BookingExecutor(calendar=fake_calendar, policy=policy),
            response_generator=ResponseGenerator(llm_client=answer_llm, policy=policy),
            flow_manager=ConversationFlow(),
        )
        classifier_llm.complete.return_value = intent_json("schedule_new")
        extractor_llm.complete.return_value = meeting_json(
            attendees=["Priya"], startTime=TOMORROW_3PM, duration=30
        )

        response = await engine.process("s-1", "Meet Priya tomorrow 3pm", ORGANIZER)

        assert response.response_text == (
            "I'm sorry, something went wrong on my side. Could you say that again?"
        )
        session = await engine.get_session("s-1")
        assert len(session.history) == 2

    @pytest.mark.asyncio
    async def test_session_save_failure_apologizes(
        self, classifier_llm, extractor_llm, answer_llm, fake_calendar, policy
    ):
        """Test a session store outage still produces a reply."""
        store = InMemorySessionStore()
        store.put = AsyncMock(side_effect=RedisConnectionError("redis went away"))
        engine = SchedulingEngine(
            classifier=IntentClassifier(llm_client=classifier_llm),
            extractor=SlotExtractor(llm_client=extractor_llm, policy=policy),
            session_manager=SessionManager(store),
            calendar=fake_calendar,
            response_generator=ResponseGenerator(llm_client=answer_llm, policy=policy),
            flow_manager=ConversationFlow(),
        )
        classifier_llm.complete.return_value = intent_json("ask_question")
        answer_llm.complete.return_value = "Sure."

        response = await engine.process("s-1", "hello", ORGANIZER)

        assert response.response_text == (
            "I'm sorry, something went wrong on my side. Could you say that again?"
        )
        assert response.session_id == "s-1"

    @pytest.mark.asyncio
    async def test_session_load_failure_apologizes(self, classifier_llm, answer_llm, policy):
        """Test an unreadable session store answers without classifying."""
        store = InMemorySessionStore()
        store.get = AsyncMock(side_effect=RedisConnectionError("redis went away"))
        engine = SchedulingEngine(
            classifier=IntentClassifier(llm_client=classifier_llm),
            session_manager=SessionManager(store),
            response_generator=ResponseGenerator(llm_client=answer_llm, policy=policy),
        )

        response = await engine.process("s-1", "hello", ORGANIZER)

        assert response.response_text.startswith("I'm sorry, something went wrong")
        classifier_llm.complete.assert_not_called()

    # === Concurrency ===

    @pytest.mark.asyncio
    async def test_concurrent_turns_recorded_in_pairs(self, engine, classifier_llm, answer_llm):
        """Test concurrent turns on one session never interleave history."""
        classifier_llm.complete.return_value = intent_json("ask_question")
        answer_llm.complete.return_value = "Sure."

        await asyncio.gather(
            engine.process("s-1", "first", ORGANIZER),
            engine.process("s-1", "second", ORGANIZER),
            engine.process("s-1", "third", ORGANIZER),
        )

        session = await engine.get_session("s-1")
        assert len(session.history) == 6
        assert session.message_count == 3
        for user_line, assistant_line in zip(session.history[::2], session.history[1::2]):
            assert user_line.startswith("User: ")
            assert assistant_line == "Assistant: Sure."

    @pytest.mark.asyncio
    async def test_clear_session(self, engine, classifier_llm, answer_llm):
        classifier_llm.complete.return_value = intent_json("ask_question")
        answer_llm.complete.return_value = "Sure."
        await engine.process("s-1", "hello", ORGANIZER)

        assert await engine.clear_session("s-1") is True
        assert await engine.clear_session("s-1") is False

    def test_response_to_dict(self):
        response = EngineResponse(response_text="Hi", session_id="s-1")

        assert response.to_dict() == {
            "response": "Hi",
            "session_id": "s-1",
            "is_complete": False,
            "requires_scheduling": False,
        }
