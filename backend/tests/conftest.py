"""
Pytest configuration and shared fixtures for Expense Tracker tests.

This file is automatically loaded by pytest and provides:
    - A throwaway SQLite database per test
    - A fake OpenAI client and object storage
    - A TestClient wired to those fakes
    - Sample transaction data

Author: Expense Tracker Team
"""

import pytest
import sys
from pathlib import Path
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import build_engine, build_session_factory, init_db
from models import User, Income, Expense


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine so worker threads share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def user(db_session):
    """A registered user without a profile image."""
    user = User(
        full_name="Asha Rao",
        email="asha@example.com",
        password_hash="not-a-real-hash",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


# =============================================================================
# Transaction Fixtures
# =============================================================================

class MockTransaction:
    """Plain transaction object for testing pure functions."""

    def __init__(self, amount, category=None, source=None, date_val=None, icon=None):
        self.amount = amount
        self.category = category
        self.source = source
        self.date = date_val
        self.icon = icon


@pytest.fixture
def now():
    """A fixed mid-month instant."""
    return datetime(2025, 3, 15, 12, 0, 0)


@pytest.fixture
def sample_expenses(now):
    return [
        MockTransaction(1200, category="food", date_val=now, icon="🍔"),
        MockTransaction(300, category="transport", date_val=now - timedelta(days=1)),
    ]


@pytest.fixture
def seed_month(db_session, user, now):
    """
    Store one month of data for `user`:
    income 5000, food 1200, transport 300, plus rows outside the month.
    """
    def _seed():
        rows = [
            Income(owner_id=user.id, source="Salary", amount=5000, date=now),
            Expense(owner_id=user.id, category="food", amount=1200, date=now),
            Expense(owner_id=user.id, category="transport", amount=300, date=now - timedelta(days=2)),
            Expense(owner_id=user.id, category="rent", amount=9000, date=datetime(2025, 2, 28, 23, 0)),
            Expense(owner_id="someone-else", category="food", amount=777, date=now),
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows
    return _seed


# =============================================================================
# AI / Storage Fixtures
# =============================================================================

def make_completion(text, total_tokens=42):
    """Build an object shaped like an OpenAI chat-completions response."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def fake_openai():
    """AsyncOpenAI stand-in replying with a fixed tip."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=make_completion("  Cut food spending by cooking at home.  ")
    )
    client.models.list = AsyncMock(return_value=[])
    return client


@pytest.fixture
def ai_service(fake_openai):
    from services.ai_service import AIService
    return AIService(client=fake_openai, model="test-model")


@pytest.fixture
def storage():
    from services.object_storage import ObjectStorage
    fake = MagicMock(spec=ObjectStorage)
    fake.upload_image.return_value = "https://res.cloudinary.com/demo/image/upload/v1/uploads/new.png"
    fake.delete_image.return_value = True
    return fake


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def client(session_factory, ai_service, storage):
    """TestClient with database, AI and storage dependencies overridden."""
    from fastapi.testclient import TestClient
    from database import get_db, get_session_factory
    from main import app, get_ai_service, get_storage

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    app.dependency_overrides[get_storage] = lambda: storage

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    from auth import create_access_token
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
