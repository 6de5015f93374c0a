"""
Pytest configuration and fixtures for batch-committer.

Provides isolated event buses, working directories and settings so tests
never touch the process-wide singletons.
"""

from typing import Callable, List

import pytest

from batch_committer import (
    CommitterContext,
    CommitterEvent,
    CommitterSettings,
    EventBus,
)


@pytest.fixture
def bus():
    """Fresh EventBus for each test."""
    return EventBus()


@pytest.fixture
def recorded(bus) -> List[CommitterEvent]:
    """Every event published on ``bus``, in order."""
    events: List[CommitterEvent] = []
    bus.subscribe(events.append)
    return events


@pytest.fixture
def work_dir(tmp_path):
    """Committer working directory (not created yet)."""
    return tmp_path / "committer"


@pytest.fixture
def context(work_dir, bus):
    return CommitterContext.create(work_dir, bus)


@pytest.fixture
def make_settings(work_dir) -> Callable[..., CommitterSettings]:
    """Settings factory isolated from COMMITTER_* environment variables."""

    def _make(**overrides) -> CommitterSettings:
        values = {"work_dir": work_dir}
        values.update(overrides)
        return CommitterSettings(_env_file=None, **values)

    return _make
