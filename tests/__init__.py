"""
Meeting Assistant Tests

Unit tests for the scheduling conversation. LLM calls are replaced with
AsyncMock completion providers and the calendar with an in-memory fake
(see conftest.py), so no network services are needed.

Running Tests:
    # Run all tests
    pytest tests/ -v

    # Run one module
    pytest tests/unit/test_scheduling_engine.py -v

Test Coverage:
    - Business-hours time window policy
    - Intent classification and schema validation
    - Meeting detail extraction and merging
    - Session stores (memory and Redis) and per-session locking
    - Calendar Agent HTTP client with retries
    - Availability checks and alternative ranking
    - Booking execution
    - Conversation decision table and responses
    - Full multi-turn scheduling conversations
"""
