"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from orgflow.core import db_client
from orgflow.core.config import settings


logger = logging.getLogger(__name__)


@pytest.fixture
async def sqlite_db(tmp_path: Path, monkeypatch) -> AsyncIterator[Path]:
    """Point the document store at a fresh SQLite file with the schema applied."""
    db_path = tmp_path / "orgflow-test.db"
    monkeypatch.setattr(settings, "sqlite_db_path", str(db_path))

    await db_client.init_db()
    logger.info("Test database initialized", extra={"db_path": str(db_path)})

    yield db_path

    await db_client.close_connection()
