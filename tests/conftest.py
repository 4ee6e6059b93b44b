"""Shared pytest fixtures for chainwatch tests."""

import sys
from pathlib import Path

import pytest

# Add src (and the project root, for tests.fixtures) to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from tests.fixtures.chain_fixtures import *  # noqa: E402,F401,F403


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep():
    """Injected sleep so retry and warmup pauses cost no wall time."""
    return RecordingSleep()
