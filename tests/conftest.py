"""Shared fixtures for tracker tests."""

import shutil
import tempfile
from pathlib import Path

import pytest

from fitlog.tracker.config import TrackerConfig
from fitlog.tracker.exceptions import GatewayError
from fitlog.tracker.gateway import GatewayResult, SqlGateway
from fitlog.tracker.progress import SilentReporter
from fitlog.tracker.schema import Profile
from fitlog.tracker.store import AppStore

USER_ID = "user-1"


class FailingGateway(SqlGateway):
    """SQL gateway that fails selected (operation, table) calls.

    ``failures`` maps (operation, table) to the number of calls that should
    fail before the gateway starts succeeding again; ``None`` fails forever.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = {}
        self.calls = []

    def fail(self, operation: str, table: str, times: int = None):
        self.failures[(operation, table)] = times

    def _should_fail(self, operation: str, table: str) -> bool:
        self.calls.append((operation, table))
        key = (operation, table)
        if key not in self.failures:
            return False
        remaining = self.failures[key]
        if remaining is None:
            return True
        if remaining <= 0:
            return False
        self.failures[key] = remaining - 1
        return True

    def _failure(self, operation: str, table: str) -> GatewayResult:
        return GatewayResult(error=GatewayError(f"injected {operation} failure",
                                                operation=operation, table=table))

    async def select(self, table, filters, order_by=None):
        if self._should_fail("select", table):
            return self._failure("select", table)
        return await super().select(table, filters, order_by)

    async def insert(self, table, row):
        if self._should_fail("insert", table):
            return self._failure("insert", table)
        return await super().insert(table, row)

    async def update(self, table, values, filters):
        if self._should_fail("update", table):
            return self._failure("update", table)
        return await super().update(table, values, filters)

    async def upsert(self, table, rows, on_conflict):
        if self._should_fail("upsert", table):
            return self._failure("upsert", table)
        return await super().upsert(table, rows, on_conflict)

    async def delete(self, table, filters):
        if self._should_fail("delete", table):
            return self._failure("delete", table)
        return await super().delete(table, filters)


@pytest.fixture
def temp_dir():
    """Create temporary directory for test databases and sessions."""
    path = tempfile.mkdtemp()
    yield Path(path)
    shutil.rmtree(path)


@pytest.fixture
def config(temp_dir):
    """Create test tracker configuration."""
    return TrackerConfig(
        database_path=str(temp_dir / "test.db"),
        session_path=str(temp_dir / "session.json"),
        progress_reporter="silent",
    )


@pytest.fixture
def gateway(config):
    """Create test gateway with a profile row for the test user."""
    gw = FailingGateway(config.database_url)
    with gw.get_session() as session:
        session.add(Profile(id=USER_ID, email="test@example.com", weight_unit="lb"))
    yield gw
    gw.close()


@pytest.fixture
def reporter():
    return SilentReporter()


@pytest.fixture
def store(gateway, config, reporter):
    """Create a store bound to the test gateway (not yet signed in)."""
    return AppStore(gateway, config, reporter)
