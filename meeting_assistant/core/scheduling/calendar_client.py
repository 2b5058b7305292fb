"""
Calendar provider interface and HTTP client for the Calendar Agent.

Calendar Agent runs separately and exposes REST API for:
- Free/busy lookups
- Finding candidate meeting times
- Creating events
- Resolving display names to addresses
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Sequence

import httpx

from meeting_assistant.config import get_settings
from meeting_assistant.core.intelligence.slots.types import MeetingRequest
from .types import Attendee, BusyInterval, EventRef, TimeSlot

logger = logging.getLogger(__name__)

# Statuses worth retrying: throttling and transient server errors
RETRYABLE_STATUS = {429, 503}
MAX_BACKOFF_SECONDS = 60.0


class CalendarProviderError(Exception):
    """Raised when the calendar service fails or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CalendarProvider(ABC):
    """Calendar operations the scheduler depends on."""

    @abstractmethod
    async def find_busy_intervals(
        self,
        user_ids: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> dict[str, list[BusyInterval]]:
        """Busy intervals per user within [start, end)."""

    @abstractmethod
    async def find_candidate_slots(
        self,
        organizer: str,
        attendees: Sequence[str],
        window: tuple[datetime, datetime],
        duration_minutes: int,
        max_candidates: int,
    ) -> list[TimeSlot]:
        """Candidate meeting times inside the window."""

    @abstractmethod
    async def create_event(
        self,
        organizer: str,
        request: MeetingRequest,
        slot: TimeSlot,
        attendees: Optional[Sequence[Attendee]] = None,
    ) -> EventRef:
        """Create the event on the organizer's calendar."""

    @abstractmethod
    async def resolve_user_by_name(self, name_or_email: str) -> Optional[str]:
        """Directory lookup; None when the user is not in the organization."""


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Parse a Retry-After header given in seconds or as an HTTP date."""
    raw = response.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class CalendarAgentClient(CalendarProvider):
    """
    HTTP client for Calendar Agent API.

    Calendar Agent exposes:
    - POST /api/availability - Free/busy schedules for users
    - POST /api/slots/find - Find candidate meeting times
    - POST /api/events - Create event
    - GET /api/users/resolve - Resolve a name or address to a directory user

    Throttling (429/503) and other 5xx responses are retried, honouring
    Retry-After when present and otherwise backing off exponentially.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: float = 1.0,
    ):
        """Initialize client.

        Args:
            base_url: Calendar Agent base URL (defaults to settings)
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt
            backoff_base: Seconds for the first backoff step
        """
        settings = get_settings()
        self.base_url = base_url or settings.calendar_agent_url
        self.timeout = timeout if timeout is not None else settings.calendar_timeout
        self.max_retries = (
            max_retries if max_retries is not None else settings.calendar_max_retries
        )
        self.backoff_base = backoff_base
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, retrying throttled and transient failures."""
        client = await self._get_client()
        attempt = 0

        while True:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                logger.error(f"Calendar request {method} {path} failed: {e}")
                raise CalendarProviderError(f"Calendar service unreachable: {e}") from e

            status = response.status_code
            retryable = status in RETRYABLE_STATUS or 500 <= status < 600
            if not retryable or attempt >= self.max_retries:
                return response

            attempt += 1
            wait = _retry_after_seconds(response)
            if wait is None:
                wait = min(MAX_BACKOFF_SECONDS, self.backoff_base * (2 ** attempt))

            if status in RETRYABLE_STATUS:
                logger.warning(
                    f"Calendar throttled (status={status}). retry #{attempt} after {wait:.1f}s"
                )
            else:
                logger.warning(
                    f"Transient calendar error {status}. retry #{attempt} after {wait:.1f}s"
                )
            await asyncio.sleep(wait)

    def _check(self, response: httpx.Response, action: str) -> dict:
        """Return the JSON body of a successful response or raise."""
        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            logger.error(f"Failed to {action}: {response.status_code} {detail}")
            raise CalendarProviderError(
                f"Failed to {action}: {detail}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise CalendarProviderError(f"Invalid response while trying to {action}") from e
        return data if isinstance(data, dict) else {"items": data}

    # === Availability ===

    async def find_busy_intervals(
        self,
        user_ids: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> dict[str, list[BusyInterval]]:
        """Get busy intervals for each user.

        Args:
            user_ids: Directory addresses to look up
            start: Window start (UTC)
            end: Window end (UTC)

        Returns:
            Mapping of user id to intervals; "free" entries are dropped
        """
        if not user_ids:
            return {}

        response = await self._request(
            "POST",
            "/api/availability",
            json={
                "user_ids": list(user_ids),
                "start": start.isoformat(),
                "end": end.isoformat(),
            },
        )
        data = self._check(response, "get availability")

        schedules = data.get("schedules", {})
        result: dict[str, list[BusyInterval]] = {}
        for user_id, items in schedules.items():
            intervals = [BusyInterval.from_dict(item) for item in items]
            result[user_id] = [i for i in intervals if i.blocks_time]
        return result

    async def find_candidate_slots(
        self,
        organizer: str,
        attendees: Sequence[str],
        window: tuple[datetime, datetime],
        duration_minutes: int,
        max_candidates: int,
    ) -> list[TimeSlot]:
        """Find candidate meeting times.

        Args:
            organizer: Organizer address
            attendees: Internal attendee addresses
            window: (start, end) search window in UTC
            duration_minutes: Meeting length
            max_candidates: Upper bound on returned slots

        Returns:
            Candidate slots, unranked
        """
        window_start, window_end = window
        response = await self._request(
            "POST",
            "/api/slots/find",
            json={
                "organizer": organizer,
                "attendees": list(attendees),
                "window_start": window_start.isoformat(),
                "window_end": window_end.isoformat(),
                "duration_minutes": duration_minutes,
                "max_candidates": max_candidates,
            },
        )
        data = self._check(response, "find slots")
        slots = data.get("slots", data.get("items", []))
        return [TimeSlot(start=s["start"], end=s["end"]) for s in slots]

    # === Events ===

    async def create_event(
        self,
        organizer: str,
        request: MeetingRequest,
        slot: TimeSlot,
        attendees: Optional[Sequence[Attendee]] = None,
    ) -> EventRef:
        """Create a calendar event for the organizer.

        Args:
            organizer: Organizer address
            request: Meeting details (subject, attendees)
            slot: Window to book
            attendees: Normalized attendee records; derived from request if omitted

        Returns:
            Reference to the created event
        """
        if attendees is None:
            attendees = [Attendee.parse(a) for a in request.attendees]

        response = await self._request(
            "POST",
            "/api/events",
            json={
                "organizer": organizer,
                "subject": request.subject or "Meeting",
                "start": slot.start.isoformat(),
                "end": slot.end.isoformat(),
                "attendees": [a.to_dict() for a in attendees],
            },
        )
        data = self._check(response, "create event")
        event = EventRef.from_dict(data)
        logger.info(f"Created event {event.event_id} for {organizer}")
        return event

    # === Directory ===

    async def resolve_user_by_name(self, name_or_email: str) -> Optional[str]:
        """Resolve a display name or address to a directory address.

        Returns:
            The user's address, or None if not in the directory
        """
        response = await self._request(
            "GET",
            "/api/users/resolve",
            params={"q": name_or_email},
        )
        if response.status_code == 404:
            return None
        data = self._check(response, "resolve user")
        return data.get("email") or None


# Singleton
_client: Optional[CalendarAgentClient] = None


def get_calendar_client() -> CalendarAgentClient:
    """Get singleton CalendarAgentClient."""
    global _client
    if _client is None:
        _client = CalendarAgentClient()
    return _client
