"""A TODO list MCP server with SQLite storage, full-text search and duplicate detection."""

__version__ = "0.1.0"