"""
Shared test fixtures and configuration for pytest.
"""

from __future__ import annotations

import asyncio
import os
import sys
from types import SimpleNamespace

import pytest

# Ensure project root is importable
_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Clear settings cache so test env vars take effect."""
    from config.settings import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def metrics():
    """Provide a fresh StreamMetrics, isolated from the process default."""
    from monitoring.metrics_collector import StreamMetrics
    return StreamMetrics()


@pytest.fixture
def env(metrics):
    """Everything a stream needs from its supervisor, driven by a ManualWaker."""
    from core.sync import WaitGroup
    from events.line_queue import LineQueue
    from tailer.waker import ManualWaker

    return SimpleNamespace(
        shutdown=asyncio.Event(),
        group=WaitGroup(),
        waker=ManualWaker(),
        lines=LineQueue(max_size=100),
        metrics=metrics,
    )
