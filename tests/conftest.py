"""Pytest configuration and fixtures for breathco tests."""

import tempfile

from datetime import datetime
from pathlib import Path

import pytest


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that do not require external dependencies"
    )
    config.addinivalue_line(
        "markers", "business_logic: Tests for core business logic and algorithms"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests combining multiple components"
    )


# =============================================================================
# Database Test Fixtures
# =============================================================================


@pytest.fixture
def temp_db():
    """Create a temporary database path for testing."""
    temp_dir = Path(tempfile.gettempdir())
    db_path = temp_dir / f"test_breathco_{datetime.now().timestamp()}.db"

    yield db_path

    if db_path.exists():
        db_path.unlink()
    for ext in ["-wal", "-shm"]:
        wal_file = Path(str(db_path) + ext)
        if wal_file.exists():
            wal_file.unlink()


@pytest.fixture
def initialized_db(temp_db):
    """Database initialized with the global session factory."""
    from breathco.database.session import cleanup_database, init_database

    cleanup_database()
    init_database(str(temp_db))

    yield temp_db

    cleanup_database()


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temporary directory."""
    config_path = tmp_path / "config.toml"
    monkeypatch.setattr("breathco.config.get_config_path", lambda: config_path)
    return config_path
