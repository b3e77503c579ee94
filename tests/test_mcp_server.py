"""Tests for the fitlog MCP server tools."""

import pytest

from fitlog.mcp.server import FitlogMCPServer, create_server
from fitlog.tracker.editing import new_workout
from fitlog.tracker.exceptions import NotSignedInError
from fitlog.tracker.gateway import SqlGateway
from fitlog.tracker.identity import LocalIdentityProvider
from fitlog.tracker.progress import SilentReporter
from fitlog.tracker.store import AppStore

DAY = "2025-06-01"


@pytest.fixture
def signed_in_config(config):
    """Register and sign in a user through the session file."""
    gateway = SqlGateway.from_config(config)
    provider = LocalIdentityProvider(gateway, config.session_file)
    provider.confirm(provider.sign_up("lifter@example.com", "hunter22").token)
    gateway.close()
    return config


@pytest.fixture
def server(signed_in_config):
    mcp_server = FitlogMCPServer(signed_in_config)
    yield mcp_server
    mcp_server.gateway.close()


class TestMCPTools:
    """Test MCP tool methods."""

    @pytest.mark.asyncio
    async def test_get_day_empty(self, server):
        """Test an empty day."""
        day = await server.get_day(DAY)
        assert day == {"date": DAY, "weight_unit": "lb", "metrics": None, "workouts": []}

    @pytest.mark.asyncio
    async def test_log_metrics(self, server):
        """Test logging writes through the store."""
        store = await server._get_store()
        await store.add_metric_definition("BF%")

        result = await server.log_metrics(DAY, weight=181.0, custom_metrics={"bf%": 15.0})

        assert result["saved"] is True
        assert result["entry"]["custom_metrics"] == {"BF%": 15.0}
        day = await server.get_day(DAY)
        assert day["metrics"]["weight"] == 181.0

    @pytest.mark.asyncio
    async def test_log_metrics_validation(self, server):
        """Test unknown metrics and empty calls return errors."""
        assert "error" in await server.log_metrics(DAY)
        assert "error" in await server.log_metrics(DAY, custom_metrics={"HR": 60})

    @pytest.mark.asyncio
    async def test_list_metric_definitions(self, server):
        """Test definitions are listed in order."""
        store = await server._get_store()
        await store.add_metric_definition("BF%")
        await store.add_metric_definition("HR")

        result = await server.list_metric_definitions()
        assert result["count"] == 2
        assert [d["name"] for d in result["metric_definitions"]] == ["BF%", "HR"]

    @pytest.mark.asyncio
    async def test_list_workouts_newest_first(self, server):
        """Test workouts are sorted by date, newest first."""
        store = await server._get_store()
        store.add_workout(new_workout("2025-06-01", "A"))
        store.add_workout(new_workout("2025-06-03", "B"))
        await store.flush()

        result = await server.list_workouts(limit=1)
        assert result["total"] == 2
        assert [w["name"] for w in result["workouts"]] == ["B"]

    @pytest.mark.asyncio
    async def test_get_trend(self, server):
        """Test trend payloads and errors."""
        await server.log_metrics("2025-06-01", weight=180.0)
        await server.log_metrics("2025-06-02", weight=179.0)

        trend = await server.get_trend("Weight", "all")
        assert trend["title"] == "Weight (lb)"
        assert trend["summary"]["change"] == -1.0
        assert "error" in await server.get_trend("HR", "all")
        assert "error" in await server.get_trend("Weight", "7")

    @pytest.mark.asyncio
    async def test_reads_pick_up_outside_writes(self, server, signed_in_config):
        """Test tools see data written through another connection, as the CLI does."""
        assert (await server.get_day(DAY))["metrics"] is None

        gateway = SqlGateway.from_config(signed_in_config)
        try:
            other = AppStore(gateway, signed_in_config, SilentReporter())
            await other.set_identity(server.identity.current_user().id)
            await other.update_daily_metrics(DAY, {'steps': 4200})
        finally:
            gateway.close()

        day = await server.get_day(DAY)
        assert day["metrics"]["steps"] == 4200

    @pytest.mark.asyncio
    async def test_requires_session(self, config):
        """Test tools fail when nobody is signed in."""
        mcp_server = FitlogMCPServer(config)
        try:
            with pytest.raises(NotSignedInError):
                await mcp_server.get_day(DAY)
        finally:
            mcp_server.gateway.close()


class TestCreateServer:
    """Test server construction."""

    def test_create_server_with_paths(self, temp_dir):
        """Test explicit paths override configuration."""
        mcp_server = create_server(temp_dir / "mcp.db", temp_dir / "session.json")
        try:
            assert mcp_server.config.db_path == temp_dir / "mcp.db"
            assert mcp_server.mcp.name == "fitlog"
        finally:
            mcp_server.gateway.close()
