"""Shared fixtures for server tests."""

import os
import tempfile
from datetime import datetime, timedelta

# Point the application engine at a throwaway database before hydro_server is imported
_db_dir = tempfile.mkdtemp(prefix="hydro-relay-tests-")
os.environ.setdefault("HYDRO_DATABASE_URL", f"sqlite+aiosqlite:///{_db_dir}/api.db")

import pytest
import pytest_asyncio

from hydro_server.database import build_engine, build_session_factory, init_db
from hydro_server.services.command_queue import CommandQueue

T0 = datetime(2026, 3, 1, 8, 0, 0)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh file-backed SQLite database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def queue(session_factory, clock):
    return CommandQueue(
        session_factory=session_factory,
        clock=clock,
        max_attempts=3,
        lock_timeout_seconds=60,
        claim_default_limit=5,
        claim_max_limit=50,
    )
