"""
Session management module.

Sessions hold conversation history, the partially collected meeting, the
proposed alternatives and any booking awaiting confirmation.
"""

from .models import ConversationSession, PendingBooking, SessionContext
from .manager import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionManager,
    SessionStore,
    get_session_manager,
)

__all__ = [
    # Models
    "ConversationSession",
    "PendingBooking",
    "SessionContext",
    # Storage
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    # Manager
    "SessionManager",
    "get_session_manager",
]
