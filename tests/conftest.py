"""Pytest configuration for datarepo test runs."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parent.parent / "src"


def pytest_sessionstart() -> None:
    """Make the src packages importable without an editable install."""
    if str(SRC_PATH) not in sys.path:
        sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(autouse=True)
def _no_repository_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer DATAREPO_* settings out of test runs."""
    for name in ("DATAREPO_ROOT", "DATAREPO_LOCK_ATTEMPTS", "DATAREPO_LOCK_RETRY_SECONDS"):
        monkeypatch.delenv(name, raising=False)
