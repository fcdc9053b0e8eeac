"""
Pytest fixtures for the taxation test suite.

Provides:
- Structured logging configured once per session, plus a log capture fixture
- In-memory SQLite sessions with every taxation table created
- A deterministic clock and a test actor id

Engine and in-memory service tests need no database at all; only the ORM,
selector and recorder tests request ``session``.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from taxation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from taxation_kernel.domain.clock import DeterministicClock
from taxation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all configuration rows created by tests
TEST_ACTOR_ID = uuid4()

TEST_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture taxation logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.calculate_tax(request)
            logs = captured_logs()
            assert any(r["message"] == "tax_calculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("taxation")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Common fixtures
# =============================================================================


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2024-06-15 09:30 UTC."""
    return DeterministicClock(datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc))


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """
    Fresh in-memory SQLite database per test.

    The engine uses a StaticPool, so every session of the test shares the
    same connection and therefore the same in-memory database.
    """
    init_engine_from_url(TEST_DATABASE_URL)
    create_tables()
    db_session = get_session()
    try:
        yield db_session
    finally:
        db_session.close()
        drop_tables()
        reset_engine()
