"""
fitlog MCP (Model Context Protocol) server.

Serves the signed-in user's daily metrics, workouts and trends to MCP clients.

To run the MCP server:
    python -m fitlog.mcp

Or import and use programmatically:
    from fitlog.mcp import create_server
    server = create_server("/path/to/fitlog.db")
    server.run()
"""

from .server import FitlogMCPServer, create_server, main

__all__ = ['FitlogMCPServer', 'create_server', 'main']
__version__ = "1.0.0"
