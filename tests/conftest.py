"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest


@pytest.fixture(autouse=True)
def notification_dry_run(monkeypatch):
    """Never talk to a real SMTP server or Redis from tests."""
    monkeypatch.setenv("NOTIFICATION_DRY_RUN", "true")
    monkeypatch.delenv("REDIS_URL", raising=False)
