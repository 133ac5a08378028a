"""Shared test fixtures."""

import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

import pytest

# Cheap bcrypt cost for tests; must be set before shared.config is imported
os.environ.setdefault("SDT_BCRYPT_ROUNDS", "4")

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

USER_ID = "alice"


def make_user(user_id: str = USER_ID, **overrides):
    """Stand-in for a UserModel row."""
    fields = {
        "id": uuid4(),
        "user_id": user_id,
        "name": user_id.title(),
        "email": f"{user_id}@example.com",
        "password_hash": None,
        "google_id": None,
        "github_id": None,
        "sleep_goal_minutes": 480,
        "is_admin": False,
        "created_at": datetime(2024, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_entry(start: datetime, end: datetime, user_id: str = USER_ID):
    """Stand-in for a SleepEntryModel row."""
    return SimpleNamespace(
        id=uuid4(),
        user_id=user_id,
        start_time=start,
        end_time=end,
        duration_minutes=(end - start).total_seconds() / 60,
    )


def ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


@pytest.fixture
def user():
    return make_user()


@pytest.fixture
def valid_interval():
    """A valid interval record dict for validation testing."""
    return {
        "start_time": datetime(2024, 3, 14, 23, 0, tzinfo=UTC),
        "end_time": datetime(2024, 3, 15, 7, 0, tzinfo=UTC),
    }
