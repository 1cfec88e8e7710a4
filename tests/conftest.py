"""Shared fixtures for the memory capture test suite."""

from __future__ import annotations

import os

import pytest
import structlog

from memory_capture.config import get_settings


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep tests independent of the developer's environment and home dir."""
    for key in list(os.environ):
        if key.upper().startswith("MEMORY_CAPTURE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
