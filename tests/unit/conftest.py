"""Pytest configuration and fixtures for unit tests."""

import pytest

from orgflow.core.events import ChangeEvent, event_bus
from orgflow.domain.user import UserRole
from orgflow.interface.identity_client import IdentityDeleteResult
from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


async def _mock_delete_identity(**kwargs) -> IdentityDeleteResult:
    """Mock identity deletion that reports an unconfigured identity store."""
    return IdentityDeleteResult(success=False, skipped=True)


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches orgflow.core.db_client functions to use InMemoryDBClient.

    Also patches the identity store client to avoid real HTTP calls and
    retry delays in unit tests.
    """

    # Patch all db_client functions
    monkeypatch.setattr("orgflow.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("orgflow.core.db_client.set_record", in_memory_db.set_record)
    monkeypatch.setattr("orgflow.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("orgflow.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("orgflow.core.db_client.increment_field", in_memory_db.increment_field)
    monkeypatch.setattr("orgflow.core.db_client.delete_records", in_memory_db.delete_records)
    monkeypatch.setattr("orgflow.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("orgflow.core.db_client.list_all_records", in_memory_db.list_all_records)
    monkeypatch.setattr("orgflow.core.db_client.get_first_record", in_memory_db.get_first_record)

    # Patch identity store to avoid real HTTP calls
    monkeypatch.setattr("orgflow.interface.identity_client.delete_identity", _mock_delete_identity)

    return in_memory_db


@pytest.fixture
def make_user(patched_db):
    """Factory that stores a user profile and returns its record."""

    async def _make_user(
        user_id: str,
        *,
        role: UserRole = UserRole.EMPLOYEE,
        name: str | None = None,
        department: str | None = None,
        points: int = 0,
    ) -> dict:
        return await patched_db.create_record(
            collection="users",
            record_id=user_id,
            data={
                "name": name or user_id.title(),
                "email": f"{user_id}@example.com",
                "role": role,
                "department": department,
                "points": points,
                "rating_score": 0.0,
                "rating_count": 0,
            },
        )

    return _make_user


@pytest.fixture
def captured_events():
    """Collects every change event published during the test."""
    events: list[ChangeEvent] = []

    def _handler(event: ChangeEvent) -> None:
        events.append(event)

    event_bus.subscribe(_handler)
    yield events
    event_bus.unsubscribe(_handler)
