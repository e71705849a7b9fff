"""Shared test fixtures."""

import pytest


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("deadlines.config.settings.turso_database_url", "")


@pytest.fixture(autouse=True)
def _utc_deadlines(monkeypatch: pytest.MonkeyPatch) -> None:
    """Read naive deadlines as UTC regardless of local configuration."""
    monkeypatch.setattr("deadlines.config.settings.deadline_timezone", "UTC")
