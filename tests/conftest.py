"""Shared fixtures for the command center test suite."""

import pytest

from command_center.database import SupabaseDB
from command_center.logging import init_logger
from fakes import NOW, FakeClock, FakeSupabaseClient


# ---------------------------------------------------------------------------
# Ensure we don't hit real APIs during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear all API keys so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "FACEBOOK_PAGE_ID",
        "FACEBOOK_ACCESS_TOKEN",
        "INSTAGRAM_ACCOUNT_ID",
        "INSTAGRAM_ACCESS_TOKEN",
        "TIKTOK_ACCESS_TOKEN",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "PUBLISH_TIMEOUT_SECONDS",
        "STUCK_TIMEOUT_MINUTES",
        "MAINTENANCE_INTERVAL_SECONDS",
        "FACEBOOK_API_VERSION",
        "LOG_LEVEL",
        "APP_URL",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Audit logger writes into the test's tmp dir
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def audit_logger(tmp_path):
    """A fresh global AgentLogger per test, logging under tmp_path."""
    return init_logger(log_dir=str(tmp_path / "logs"))


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return NOW


@pytest.fixture
def clock():
    return FakeClock(NOW)


# ---------------------------------------------------------------------------
# In-memory Supabase
# ---------------------------------------------------------------------------
@pytest.fixture
def fake_client():
    return FakeSupabaseClient()


@pytest.fixture
def db(fake_client):
    """The real SupabaseDB over the in-memory client."""
    return SupabaseDB(fake_client)
