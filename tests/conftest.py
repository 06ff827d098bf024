"""Shared test configuration and fixtures."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from soc1_analyzer.config import ENV_KEYS

# Load .env from project root for all tests
root = Path(__file__).parent.parent.resolve()
load_dotenv(root / ".env")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every SOC1_* configuration variable for the duration of a test."""
    for key in ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
