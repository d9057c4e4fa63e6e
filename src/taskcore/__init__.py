"""Priority task scheduling core with persistence and an MCP dispatch surface."""

__version__ = "0.1.0"
