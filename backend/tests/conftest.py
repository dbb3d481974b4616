# backend/tests/conftest.py

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

# Load the test environment before any app import: settings are read at import time.
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", ".env.test"), override=True)

from tgauth.main import app  # noqa: E402
from tgauth.services.db_service import db_service, INDEXES  # noqa: E402
from tgauth.services.project_service import project_service  # noqa: E402
from tgauth.services.telegram_service import telegram_service  # noqa: E402


def _swap_database(monkeypatch):
    database = AsyncMongoMockClient()["tgauth_test"]
    monkeypatch.setattr(db_service, "db", database)
    return database


async def _create_indexes(database):
    # mongomock deletes TTL-indexed documents eagerly against the wall clock;
    # MongoDB sweeps lazily. Expiry is covered by the services' own checks.
    for collection, keys, options in INDEXES:
        if "expireAfterSeconds" not in options:
            await database[collection].create_index(keys, **options)


@pytest_asyncio.fixture
async def mock_db(monkeypatch):
    """An in-memory database with the production unique indexes in place."""
    database = _swap_database(monkeypatch)
    await _create_indexes(database)
    return database


@pytest.fixture
def mock_telegram(mocker):
    """Replaces outbound Bot API calls; assertions read the recorded calls."""
    send_message = mocker.patch.object(
        telegram_service, "send_message", new_callable=AsyncMock, return_value={"message_id": 1}
    )
    answer_callback_query = mocker.patch.object(
        telegram_service, "answer_callback_query", new_callable=AsyncMock, return_value=True
    )
    return SimpleNamespace(send_message=send_message, answer_callback_query=answer_callback_query)


@pytest_asyncio.fixture
async def project(mock_db):
    return await project_service.create_project("Shop")


@pytest.fixture(scope="function")
def test_client(monkeypatch, mocker, mock_telegram):
    """
    Provides a TestClient for API integration tests, backed by the in-memory
    database. TELEGRAM_UPDATE_MODE=none keeps the poller from starting.
    """
    database = _swap_database(monkeypatch)
    mocker.patch.object(db_service, "create_indexes", new_callable=AsyncMock)
    with TestClient(app) as client:
        client.portal.call(_create_indexes, database)
        yield client

