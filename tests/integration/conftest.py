"""Pytest configuration and fixtures for integration tests against SQLite."""

import pytest

from orgflow.core import db_client
from orgflow.core.config import settings
from orgflow.domain.user import UserRole


@pytest.fixture
async def store(sqlite_db, monkeypatch):
    """Fresh SQLite document store with no identity store configured."""
    monkeypatch.setattr(settings, "identity_base_url", None)
    return sqlite_db


@pytest.fixture
def seed_user(store):
    """Factory that stores a user profile directly in SQLite."""

    async def _seed_user(user_id: str, *, role: UserRole = UserRole.EMPLOYEE, department: str | None = None) -> dict:
        return await db_client.create_record(
            collection="users",
            record_id=user_id,
            data={
                "name": user_id.title(),
                "email": f"{user_id}@example.com",
                "role": role,
                "department": department,
                "points": 0,
                "rating_score": 0.0,
                "rating_count": 0,
            },
        )

    return _seed_user
