"""
Shared test setup: environment pinning, settings cache and fixtures
"""
import os
import sys

# Repository root on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Settings are read at import time; pin the test environment first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SPATIAL_PROVIDER", "auto")

import pytest  # noqa: E402

from core.config import get_settings  # noqa: E402

# test_db, venue_seeder, mock_production_db
from tests.fixtures import *  # noqa: F401,F403,E402


@pytest.fixture(autouse=True)
def test_environment(monkeypatch):
    """
    Force the test environment and rebuild settings around each test
    """
    monkeypatch.setenv("ENVIRONMENT", "test")
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def test_settings():
    """Settings as the engine sees them under test"""
    get_settings.cache_clear()
    settings = get_settings()
    assert settings.environment == "test"
    return settings
