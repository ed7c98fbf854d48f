"""Pytest configuration and fixtures for render-gateway tests."""

import os
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

import pytest

from app.chromium_manager import ChromiumMetrics
from tests.page_doubles import make_mock_page

# The dedicated metrics server would bind a real port during app lifespan
os.environ.setdefault("METRICS_SERVER_ENABLED", "false")


@pytest.fixture
def mock_page() -> MagicMock:
    return make_mock_page()


@pytest.fixture
def mock_chromium_manager(mock_page: MagicMock) -> MagicMock:
    """ChromiumManager double handing out ``mock_page`` and recording real metrics."""
    manager = MagicMock()
    manager.metrics = ChromiumMetrics()
    manager.page_calls = []

    @asynccontextmanager
    async def page(**kwargs):
        manager.page_calls.append(kwargs)
        yield mock_page

    manager.page = page
    return manager
