"""Fixtures shared by the unit tests."""
import stat
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from motionwatch.common.schemas import ComparisonResult
from motionwatch.pipeline.alert import AlertDispatcher
from motionwatch.pipeline.comparator import SceneComparator
from motionwatch.pipeline.coordinator import PipelineCoordinator
from motionwatch.pipeline.snapshot import SnapshotTrigger


@pytest.fixture
def make_script(tmp_path: Path):
    """Write an executable /bin/sh script and return its path."""
    def _make(name: str, body: str) -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)
    return _make


def _scores(mapping=None, default=0):
    """compare() side effect: score looked up by (before, after)."""
    mapping = mapping or {}

    async def _compare(before, after, fuzz):
        if not before or not after:
            return None
        return ComparisonResult(before=before, after=after, score=mapping.get((before, after), default))
    return _compare


@pytest.fixture
def comparator():
    mock = AsyncMock(spec=SceneComparator)
    mock.compare.side_effect = _scores()
    return mock


@pytest.fixture
def alert():
    mock = AsyncMock(spec=AlertDispatcher)
    mock.fire.return_value = True
    return mock


@pytest.fixture
def snapshot():
    mock = AsyncMock(spec=SnapshotTrigger)
    mock.trigger.return_value = True
    return mock


@pytest.fixture
def coordinator(comparator, alert, snapshot):
    return PipelineCoordinator(
        comparator=comparator,
        alert=alert,
        snapshot=snapshot,
        scene_fuzz=20,
        reference_fuzz=30,
        setref_key=19,
    )


@pytest.fixture
def score_table():
    """Build a compare() side effect from {(before, after): score}."""
    return _scores
