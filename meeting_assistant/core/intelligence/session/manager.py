"""Session storage and per-session turn serialization."""

import asyncio
import logging
import time
import weakref
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from redis.asyncio import Redis

from meeting_assistant.config import settings
from meeting_assistant.infra.redis import get_redis, redis_errors, session_key
from .models import ConversationSession

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class SessionStore(ABC):
    """Key-value storage for serialized sessions."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[ConversationSession]:
        """Load a session, or None if absent or expired."""

    @abstractmethod
    async def put(self, session: ConversationSession) -> None:
        """Store a session and restart its TTL."""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if it existed."""

    @abstractmethod
    async def touch(self, session_id: str) -> bool:
        """Restart a session's TTL. Returns True if it exists."""


class InMemorySessionStore(SessionStore):
    """
    Process-local store.

    Sessions are kept serialized so callers never share live objects, the
    same as with Redis. A ttl of None or 0 keeps sessions until deleted.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds or None
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def _expires_at(self) -> Optional[float]:
        return self._clock() + self._ttl if self._ttl else None

    def _live(self, session_id: str) -> Optional[str]:
        entry = self._data.get(session_id)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[session_id]
            logger.debug(f"Session expired: {session_id}")
            return None
        return payload

    async def get(self, session_id: str) -> Optional[ConversationSession]:
        payload = self._live(session_id)
        return ConversationSession.from_json(payload) if payload else None

    def _prune(self) -> None:
        """Drop every expired entry, not just the one being read."""
        now = self._clock()
        expired = [
            session_id
            for session_id, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for session_id in expired:
            del self._data[session_id]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired sessions")

    async def put(self, session: ConversationSession) -> None:
        self._prune()
        self._data[session.session_id] = (session.to_json(), self._expires_at())

    async def delete(self, session_id: str) -> bool:
        return self._data.pop(session_id, None) is not None

    async def touch(self, session_id: str) -> bool:
        payload = self._live(session_id)
        if payload is None:
            return False
        self._data[session_id] = (payload, self._expires_at())
        return True

    def __len__(self) -> int:
        return len(self._data)


class RedisSessionStore(SessionStore):
    """
    Redis-backed store.

    Key pattern: meeting-assistant:v1:session:{session_id}
    """

    def __init__(self, redis: Redis, ttl_seconds: Optional[int] = None):
        self._redis = redis
        self._ttl = ttl_seconds or settings.redis_session_ttl

    async def get(self, session_id: str) -> Optional[ConversationSession]:
        async with redis_errors(f"load session {session_id}"):
            data = await self._redis.get(session_key(session_id))
        return ConversationSession.from_json(data) if data else None

    async def put(self, session: ConversationSession) -> None:
        async with redis_errors(f"save session {session.session_id}"):
            await self._redis.setex(session_key(session.session_id), self._ttl, session.to_json())

    async def delete(self, session_id: str) -> bool:
        async with redis_errors(f"delete session {session_id}"):
            return bool(await self._redis.delete(session_key(session_id)))

    async def touch(self, session_id: str) -> bool:
        async with redis_errors(f"refresh session {session_id}"):
            return bool(await self._redis.expire(session_key(session_id), self._ttl))


class SessionManager:
    """
    Session lifecycle on top of a SessionStore.

    The store is chosen on first use from settings. When Redis is configured
    but unreachable, the manager falls back to process-local memory.
    """

    def __init__(self, store: Optional[SessionStore] = None):
        """Initialize session manager.

        Args:
            store: Session store (chosen from settings if not provided)
        """
        self._store = store
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def _get_store(self) -> SessionStore:
        if self._store is not None:
            return self._store

        ttl = settings.redis_session_ttl
        if settings.uses_redis_sessions:
            redis = await get_redis()
            if redis is not None:
                self._store = RedisSessionStore(redis, ttl)
                logger.info("Using Redis session store")
                return self._store
            logger.warning("Redis unavailable, using in-memory session store")

        self._store = InMemorySessionStore(ttl)
        return self._store

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize turns for one session; other sessions are unaffected."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        async with lock:
            yield

    async def get(self, session_id: str) -> Optional[ConversationSession]:
        """
        Get session by ID.

        Returns:
            ConversationSession or None if not found
        """
        store = await self._get_store()
        return await store.get(session_id)

    async def get_or_create(self, session_id: str) -> ConversationSession:
        """
        Get existing session or create new one.

        Args:
            session_id: Conversation identifier

        Returns:
            Existing or new ConversationSession
        """
        store = await self._get_store()
        session = await store.get(session_id)
        if session is not None:
            await store.touch(session_id)
            return session

        logger.info(f"Created new session: {session_id}")
        return ConversationSession(session_id=session_id)

    async def save(self, session: ConversationSession) -> None:
        """Save session and refresh its TTL."""
        session.updated_at = _utcnow()
        store = await self._get_store()
        await store.put(session)
        logger.debug(f"Session saved: {session.session_id}")

    async def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if deleted
        """
        store = await self._get_store()
        deleted = await store.delete(session_id)
        if deleted:
            logger.info(f"Cleared session: {session_id}")
        return deleted

    async def touch(self, session_id: str) -> bool:
        """Refresh session TTL."""
        store = await self._get_store()
        return await store.touch(session_id)


# Singleton
_manager: Optional[SessionManager] = None


async def get_session_manager() -> SessionManager:
    """Get singleton SessionManager."""
    global _manager
    if _manager is None:
        _manager = SessionManager()
    return _manager
