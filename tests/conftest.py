"""
Shared pytest fixtures for the progression server test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary test databases wired through ``use_test_database``
- History block stores (default limits and deliberately tiny limits)
- Character sheet store seeded with a sample character
- FastAPI TestClient instances

Every fixture is function-scoped so tests never share database state.
"""

import copy
import shutil
import tempfile
import uuid
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from progression_server.config import use_test_database
from progression_server.db import schema
from progression_server.db.characters_repo import CharacterSheetStore
from progression_server.db.history_repo import HistoryBlockStore, StoreSettings
from progression_server.ledger import LedgerWriter
from progression_server.services import LedgerServices
from tests.constants import SAMPLE_SHEET

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    Creates a unique temporary database for each test function and points the
    config system at it with ``use_test_database``.

    Yields:
        Path to temporary database file

    Cleanup:
        Removes temporary database after test completes
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_progression.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[None, None, None]:
    """
    Initialize a test database with schema but no data.

    Args:
        temp_db_path: Path to temporary database (from fixture)
    """
    schema.init_database()
    yield


# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def store_settings(test_db, temp_db_path: Path) -> StoreSettings:
    """Store settings with production limits on the temporary database."""
    return StoreSettings(db_path=temp_db_path)


@pytest.fixture(scope="function")
def store(store_settings: StoreSettings) -> HistoryBlockStore:
    return HistoryBlockStore(store_settings)


@pytest.fixture(scope="function")
def tiny_store(test_db, temp_db_path: Path) -> HistoryBlockStore:
    """
    Store whose blocks hold at most three records.

    Lets tests cross block boundaries with a handful of appends.
    """
    return HistoryBlockStore(StoreSettings(db_path=temp_db_path, max_block_records=3))


@pytest.fixture(scope="function")
def writer(store: HistoryBlockStore) -> LedgerWriter:
    return LedgerWriter(store)


@pytest.fixture(scope="function")
def character_id() -> str:
    """A fresh character id per test."""
    return str(uuid.uuid4())


@pytest.fixture(scope="function")
def sheet_store(test_db, temp_db_path: Path) -> CharacterSheetStore:
    return CharacterSheetStore(temp_db_path)


@pytest.fixture(scope="function")
def seeded_character(sheet_store: CharacterSheetStore, character_id: str) -> str:
    """
    Create the sample character sheet and return its id.

    Returns:
        The character id (same value as the ``character_id`` fixture)
    """
    sheet_store.create_character(character_id, copy.deepcopy(SAMPLE_SHEET), user_id="user-1")
    return character_id


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def services(store_settings: StoreSettings) -> LedgerServices:
    return LedgerServices(store_settings, revert_max_workers=2)


@pytest.fixture(scope="function")
def test_client(services: LedgerServices) -> TestClient:
    """
    Create a FastAPI TestClient for API endpoint testing.

    Provides a test client with all routes and exception handlers registered
    against the temporary database.

    Example:
        def test_health(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from fastapi import FastAPI

    from progression_server.api.routes import register_routes

    app = FastAPI()
    register_routes(app, services)
    return TestClient(app)
