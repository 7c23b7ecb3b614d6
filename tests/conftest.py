"""Shared test fixtures and configuration.

Sets up fake environment variables so focuswatch.config doesn't sys.exit(),
and provides temp-file SQLite stores.
"""

import os
import tempfile

# Patch env vars BEFORE any focuswatch imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.gettempdir(), "focuswatch-tests.db"))
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("DURABLE_RULE_LEDGER", "false")
os.environ.setdefault("WEATHER_API_KEY", "")
os.environ.setdefault("GITHUB_TOKEN", "")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_focuswatch.db")


@pytest.fixture
def session_db(tmp_db_path):
    from focuswatch.data.db import SessionDB
    return SessionDB(db_path=tmp_db_path)


@pytest.fixture
def classification_db(tmp_db_path):
    from focuswatch.data.db import ClassificationDB
    return ClassificationDB(db_path=tmp_db_path)


@pytest.fixture
def snapshot_db(tmp_db_path):
    from focuswatch.data.db import SnapshotDB
    return SnapshotDB(db_path=tmp_db_path)


@pytest.fixture
def cache_db(tmp_db_path):
    from focuswatch.data.db import CacheDB
    return CacheDB(db_path=tmp_db_path)


@pytest.fixture
def marker_db(tmp_db_path):
    from focuswatch.data.db import MarkerDB
    return MarkerDB(db_path=tmp_db_path)


@pytest.fixture
def clipboard_db(tmp_db_path):
    from focuswatch.data.db import ClipboardDB
    return ClipboardDB(db_path=tmp_db_path)


@pytest.fixture
def test_settings():
    """A private copy of settings that a test may override freely."""
    from focuswatch.config import settings
    return settings.model_copy()
