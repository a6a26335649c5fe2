"""MCP server, data client and domain types for Velib Paris bike sharing data."""

__version__ = "0.1.0"