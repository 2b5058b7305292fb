"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    ANTHROPIC_API_KEY: API key for the text completion provider
    CALENDAR_AGENT_URL: Base URL of the calendar service
    REDIS_URL: Redis connection string
    SESSION_BACKEND: memory or redis (default: memory)
    TIMEZONE_OFFSET_MINUTES: Fixed UTC offset of the organizer (default: 330, IST)
    BUSINESS_HOURS_START / BUSINESS_HOURS_END: Bookable window, local HH:MM
    DEFAULT_ORGANIZER_EMAIL: Organizer used when the caller does not supply one
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_name: str = "meeting-assistant"
    """Application name."""

    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose logging
    - staging: Pre-production testing environment
    - production: Live production environment, minimal logging
    """

    debug: bool = False
    """Enable debug logging."""

    # Text Completion (Anthropic)
    anthropic_api_key: str = ""
    """Anthropic API key. Required only when the Claude client is constructed."""

    llm_model: str = "claude-3-5-haiku-20241022"
    """Primary model for classification, extraction and answers."""

    llm_fallback_model: str = "claude-sonnet-4-20250514"
    """Model tried when the primary model call fails."""

    llm_max_tokens: int = 512
    """Maximum tokens per completion."""

    # Calendar Service
    calendar_agent_url: str = "http://localhost:8001"
    """Base URL of the calendar availability/booking service."""

    calendar_timeout: float = 20.0
    """Calendar request timeout in seconds."""

    calendar_max_retries: int = 5
    """Retries for throttled (429/503) or failed (5xx) calendar calls."""

    # Redis / Sessions
    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL.

    Format: redis://host:port/db
    Used only when session_backend is "redis".
    """

    session_backend: Literal["memory", "redis"] = "memory"
    """Where conversation sessions live.

    - memory: process-local dictionary (lost on restart)
    - redis: shared store with TTL, falls back to memory if unreachable
    """

    redis_session_ttl: int = 1800
    """Session TTL in seconds (default: 30 minutes). 0 disables expiry in memory."""

    redis_socket_timeout: float = 5.0
    """Connect and read timeout for session store calls, in seconds."""

    redis_max_connections: int = 20
    """Upper bound on pooled Redis connections."""

    # Time Window Policy
    timezone_offset_minutes: int = 330
    """Fixed UTC offset used for all local-time reasoning (330 = UTC+05:30)."""

    timezone_label: str = "IST"
    """Human-readable name of the fixed offset, used in prompts and replies."""

    business_hours_start: str = "10:00"
    """Local time the bookable window opens (HH:MM)."""

    business_hours_end: str = "21:00"
    """Local time the bookable window closes (HH:MM)."""

    # Alternative Slot Search
    alternative_search_days: int = 7
    """How far forward alternatives are searched, in days."""

    max_alternatives: int = 5
    """Maximum number of alternatives offered to the user."""

    max_candidate_slots: int = 20
    """Candidates requested from the calendar provider before re-validation."""

    near_time_window_minutes: int = 180
    """Candidates within this distance of the requested start rank first."""

    # Conversation
    history_context_lines: int = 10
    """Number of recent history lines included in prompts."""

    default_organizer_email: Optional[str] = None
    """Organizer used when neither the caller nor the session supplies one."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    @field_validator("business_hours_start", "business_hours_end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit()):
            raise ValueError(f"Expected HH:MM, got {value!r}")
        if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
            raise ValueError(f"Out of range time {value!r}")
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def uses_redis_sessions(self) -> bool:
        """Check if sessions should be stored in Redis."""
        return self.session_backend == "redis"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and reused
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from meeting_assistant.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.business_hours_start)
        10:00
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
