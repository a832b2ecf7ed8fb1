"""
Shared pytest fixtures.

Settings are cached per process, so each test starts from a clean cache and
an environment without CARBON_* overrides.
"""

import os

import pytest

from carbconfig import get_settings


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CARBON_"):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
