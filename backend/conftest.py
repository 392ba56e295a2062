"""Root conftest: load test environment, route structlog through stdlib, isolate BATTLE_* settings."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

from shared.logging import clear_log_context, configure_structlog

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Processor chain only; no handlers, so caplog sees every event.
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent session and connection ids leaking between tests."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture(autouse=True)
def _isolate_battle_env(monkeypatch):
    """Drop BATTLE_* variables from the developer's shell so settings start from defaults."""
    for name in list(os.environ):
        if name.startswith("BATTLE_"):
            monkeypatch.delenv(name)
