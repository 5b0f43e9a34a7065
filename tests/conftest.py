"""Pytest fixtures for DeckCheck tests."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from deckcheck.worker_server import app


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client (startup hook not run, so the actor scheduler stays off)."""
    return TestClient(app)


@pytest.fixture
def mock_db():
    """AsyncSession stand-in: awaitable execute/commit/flush/rollback, sync add/add_all."""
    db = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


@pytest.fixture
def session_writes():
    """Patch automation-log persistence used by SessionLogger; yields the write mock."""
    with patch("deckcheck.worker.session_log.db_handler") as mock_handler:
        mock_handler.write_automation_log = AsyncMock()
        mock_handler.safe_rollback = AsyncMock()
        yield mock_handler.write_automation_log
