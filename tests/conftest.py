"""
Pytest Configuration and Fixtures

Integration tests run against in-memory SQLite (aiosqlite + StaticPool,
one shared connection per test). Celery is never contacted: services get
a dispatcher that records entry ids instead.
"""
import os
import sys

import pytest
import pytest_asyncio

# database.py refuses to import without a URL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Add services/reasoning to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'services', 'reasoning'))

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables."""
    from database import create_tables

    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    from database import make_session_factory

    return make_session_factory(engine)


@pytest.fixture
def dispatched():
    """Entry ids handed to the insight worker."""
    return []


@pytest.fixture
def reasoning_service(session_factory, dispatched):
    from reasoning_service import ReasoningService

    return ReasoningService(session_factory, dispatch=dispatched.append)


@pytest.fixture
def explicit_service(session_factory, dispatched):
    """Service whose conclusion policy ignores phrasing."""
    from reasoning_service import ReasoningService

    return ReasoningService(session_factory, conclusion_policy="explicit", dispatch=dispatched.append)


@pytest.fixture
def sample_thoughts():
    """Thought dicts as stored in an insight payload."""
    return [
        {"id": 1, "thought_number": 1, "revision_number": 0, "thought_type": "question",
         "content": "Which queue backend fits our deployment on docker?", "confidence_level": 0.7,
         "branch_id": None, "is_revision": False},
        {"id": 2, "thought_number": 2, "revision_number": 0, "thought_type": "observation",
         "content": "Redis already runs next to postgres", "confidence_level": 0.7,
         "branch_id": None, "is_revision": False},
        {"id": 3, "thought_number": 3, "revision_number": 0, "thought_type": "hypothesis",
         "content": "RabbitMQ gives stronger delivery guarantees", "confidence_level": 0.7,
         "branch_id": "branch-abc123def456", "is_revision": False},
        {"id": 4, "thought_number": 2, "revision_number": 1, "thought_type": "observation",
         "content": "Redis already runs in production", "confidence_level": 0.8,
         "branch_id": None, "is_revision": True},
        {"id": 5, "thought_number": 4, "revision_number": 0, "thought_type": "conclusion",
         "content": "Use Redis as the broker", "confidence_level": 0.9,
         "branch_id": None, "is_revision": False},
    ]
