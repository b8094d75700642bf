"""MCP server and async client for the MyGo hotel supplier API."""

__version__ = "0.1.0"
