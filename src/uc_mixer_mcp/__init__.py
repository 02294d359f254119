"""MCP server and protocol client for UC-protocol digital mixers."""

__version__ = "0.1.0"
