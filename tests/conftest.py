"""Pytest configuration and fixtures."""

import os
from pathlib import Path

import pytest

# Settings are read lazily and cached; pin the test environment before any
# engine module is imported.
os.environ["ENGINE_ENV"] = "test"
for _key in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"):
    os.environ.pop(_key, None)

from evidence_engine.core.config import get_settings  # noqa: E402
from evidence_engine.core.schemas_citation import EmotionalSignal  # noqa: E402
from evidence_engine.core.taxonomy import default_taxonomy  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["ENGINE_ENV"] = "test"
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sample_handbook() -> str:
    return (FIXTURES_DIR / "sample_handbook.txt").read_text(encoding="utf-8")


@pytest.fixture
def taxonomy():
    return default_taxonomy()


@pytest.fixture
def neutral_signal() -> EmotionalSignal:
    return EmotionalSignal(primary_emotion="neutral", intensity=0.3)
