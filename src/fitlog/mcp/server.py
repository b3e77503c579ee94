#!/usr/bin/env python3
"""MCP Server exposing the signed-in user's fitlog data."""

import json
import logging
import sys
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from ..tracker.config import TIMEFRAMES, ConfigManager, TrackerConfig
from ..tracker.exceptions import GatewayError, NotSignedInError
from ..tracker.gateway import SqlGateway
from ..tracker.identity import LocalIdentityProvider
from ..tracker.models import is_weight_metric, parse_iso_date, today_iso
from ..tracker.progress import create_reporter
from ..tracker.schema import get_schema_info
from ..tracker.store import AppStore
from ..tracker.trends import build_trend

logger = logging.getLogger(__name__)


class FitlogMCPServer:
    """MCP server over the tracker store of the signed-in user."""

    def __init__(self, config: TrackerConfig):
        self.mcp = FastMCP("fitlog")
        self.config = config
        self.gateway = SqlGateway.from_config(config)
        self.identity = LocalIdentityProvider(self.gateway, config.session_file)
        self._store: Optional[AppStore] = None

        self._register_tools()
        self._register_resources()
        self._register_prompts()

    def _register_tools(self):
        """Register all MCP tools."""
        for tool in (self.get_day, self.log_metrics, self.list_metric_definitions,
                     self.list_workouts, self.get_trend):
            self.mcp.tool()(tool)

    def _register_resources(self):
        """Register MCP resources."""

        @self.mcp.resource("schema://fitlog")
        def get_schema_resource() -> str:
            """Database schema as JSON."""
            return json.dumps(get_schema_info(), indent=2)

    def _register_prompts(self):
        """Register MCP prompts."""

        @self.mcp.prompt()
        def review_progress(metric: str = "Weight", timeframe: str = "30") -> str:
            """Prompt for reviewing a metric's recent trend alongside workouts."""
            return f"""
Review my {metric} progress over the timeframe "{timeframe}".

1. Call get_trend(metric="{metric}", timeframe="{timeframe}") for the series and summary.
2. Call list_workouts() to see recent training.
3. Describe the overall direction, notable jumps, and any gaps in logging.
            """.strip()

    # ========================================================================================
    # TOOLS
    # ========================================================================================

    async def get_day(self, day: Optional[str] = None) -> Dict[str, Any]:
        """Get metrics and workouts for a date (YYYY-MM-DD, default today)."""
        store = await self._get_store()
        day = day or today_iso()
        parse_iso_date(day)
        entry = store.state.entry_for(day)
        return {
            "date": day,
            "weight_unit": store.state.settings.weight_unit_label,
            "metrics": entry.to_dict() if entry else None,
            "workouts": [w.to_dict() for w in store.state.workouts_on(day)],
        }

    async def log_metrics(self, day: str, weight: Optional[float] = None, steps: Optional[float] = None,
                          custom_metrics: Optional[Dict[str, Optional[float]]] = None) -> Dict[str, Any]:
        """Log weight, steps and custom metric values for a date (YYYY-MM-DD).

        Custom metric names must match an existing metric definition.
        """
        store = await self._get_store()
        partial: Dict[str, Any] = {}
        if weight is not None:
            partial['weight'] = weight
        if steps is not None:
            partial['steps'] = steps
        if custom_metrics:
            resolved = {}
            for name, value in custom_metrics.items():
                definition = store.state.find_definition_by_name(name)
                if definition is None:
                    return {"error": f"Unknown metric '{name}'"}
                resolved[definition.name] = value
            partial['custom_metrics'] = resolved
        if not partial:
            return {"error": "Nothing to log"}

        saved = await store.update_daily_metrics(day, partial)
        return {"saved": saved, "entry": store.state.entry_for(day).to_dict()}

    async def list_metric_definitions(self) -> Dict[str, Any]:
        """List the user's custom metric definitions in display order."""
        store = await self._get_store()
        definitions = store.state.metric_definitions
        return {
            "metric_definitions": [d.to_dict() for d in definitions],
            "count": len(definitions),
        }

    async def list_workouts(self, day: Optional[str] = None, limit: int = 20) -> Dict[str, Any]:
        """List workouts, newest first, optionally for one date."""
        store = await self._get_store()
        workouts = store.state.workouts_on(day) if day else store.state.workouts
        ordered = sorted(workouts, key=lambda w: w.date, reverse=True)[:max(limit, 0)]
        return {
            "workouts": [w.to_dict() for w in ordered],
            "count": len(ordered),
            "total": len(workouts),
        }

    async def get_trend(self, metric: str = "Weight", timeframe: Optional[str] = None) -> Dict[str, Any]:
        """Get chart data and summary statistics for a metric over "30", "90" or "all" days."""
        store = await self._get_store()
        timeframe = timeframe or self.config.default_timeframe
        if timeframe not in TIMEFRAMES:
            return {"error": f"timeframe must be one of {list(TIMEFRAMES)}"}

        name = metric
        if not is_weight_metric(metric):
            definition = store.state.find_definition_by_name(metric)
            if definition is None:
                return {"error": f"Unknown metric '{metric}'"}
            name = definition.name
        return build_trend(store.state, name, timeframe)

    # ========================================================================================
    # HELPERS
    # ========================================================================================

    async def _get_store(self) -> AppStore:
        """Load the signed-in user's store, refetching on later calls to pick up CLI writes."""
        if self._store is not None:
            if not await self._store.reload():
                raise GatewayError("Failed to reload fitlog data")
            return self._store

        user = self.identity.current_user()
        if user is None:
            raise NotSignedInError(operation="query fitlog data")

        store = AppStore(self.gateway, self.config, create_reporter("logging", name="fitlog-mcp"))
        if not await store.set_identity(user.id):
            raise GatewayError(f"Failed to load data for {user.email}")
        self._store = store
        return store

    def run(self):
        """Run the MCP server."""
        return self.mcp.run()


def create_server(db_path: str = None, session_path: str = None) -> FitlogMCPServer:
    """Create and return MCP server instance."""
    config = ConfigManager().get_config()
    overrides = {}
    if db_path is not None:
        overrides['database_path'] = str(db_path)
    if session_path is not None:
        overrides['session_path'] = str(session_path)
    if overrides:
        config = config.update(**overrides)
    return FitlogMCPServer(config)


def main():
    """Main entry point for MCP server."""
    if len(sys.argv) > 1 and sys.argv[1] in ['--help', '-h', 'help']:
        print("""
fitlog MCP Server

Usage:
    python -m fitlog.mcp [DB_PATH]

Arguments:
    DB_PATH     Path to the fitlog database file (optional)
                Default: ~/.fitlog/fitlog.db
                Can also be set via FITLOG_DB_PATH environment variable

Environment Variables:
    FITLOG_DB_PATH        Path to the fitlog database file
    FITLOG_SESSION_PATH   Session file written by 'fitlog auth login'

Sign in first with 'fitlog auth login EMAIL'; the server serves that user's data.
        """.strip())
        sys.exit(0)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger.info("Starting fitlog MCP Server...")

    db_path = sys.argv[1] if len(sys.argv) > 1 else None
    if db_path:
        logger.info(f"Using database path: {db_path}")

    try:
        server = create_server(db_path)
        logger.info("MCP Server initialized successfully")
        server.run()
    except Exception as e:
        logger.error(f"Failed to start MCP server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
