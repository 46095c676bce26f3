"""Shared test fixtures."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide default settings for all tests."""
    monkeypatch.setenv("SANITIZER_LOG_JSON", "false")
    monkeypatch.setenv("SANITIZER_LOG_LEVEL", "debug")

    # Reset cached settings
    import request_sanitizer.config.loader as loader
    loader._settings = None
    yield
    loader._settings = None
