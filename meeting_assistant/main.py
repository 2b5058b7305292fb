"""
Meeting Assistant

Process wiring: logging, startup/shutdown of shared clients and a small
console loop for talking to the scheduling engine locally.

Usage:
    python -m meeting_assistant.main --organizer you@example.com
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from uuid import uuid4

from meeting_assistant.config import settings
from meeting_assistant.infra.claude import ClaudeClient
from meeting_assistant.infra.redis import close_redis, get_redis
from meeting_assistant.core.scheduling.calendar_client import get_calendar_client
from meeting_assistant.core.scheduling.engine import get_scheduling_engine


def setup_logging() -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan() -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of shared clients.
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")

    if settings.uses_redis_sessions and await get_redis() is None:
        logger.warning("Redis unavailable - sessions will be kept in memory")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down...")

    await get_calendar_client().close()
    logger.info("Calendar client closed")

    if ClaudeClient._instance is not None:
        await ClaudeClient._instance.close()
        ClaudeClient.reset_instance()
        logger.info("Claude client closed")

    await close_redis()

    logger.info("Shutdown complete")


async def run_console(organizer: Optional[str] = None) -> None:
    """Chat with the scheduler from a terminal until EOF or 'quit'."""
    session_id = str(uuid4())
    engine = get_scheduling_engine()

    async with lifespan():
        print(f"Meeting assistant ready (session {session_id}). Type 'quit' to exit.")
        while True:
            try:
                message = await asyncio.to_thread(input, "You: ")
            except EOFError:
                break
            if message.strip().lower() in ("quit", "exit"):
                break
            if not message.strip():
                continue

            result = await engine.process(session_id, message, organizer)
            print(f"Assistant: {result.response_text}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Conversational meeting scheduler")
    parser.add_argument(
        "--organizer",
        default=None,
        help="Organizer email (defaults to DEFAULT_ORGANIZER_EMAIL)",
    )
    args = parser.parse_args()
    asyncio.run(run_console(args.organizer))


if __name__ == "__main__":
    main()
