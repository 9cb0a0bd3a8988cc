"""Tools, memory, planning and an MCP client for a coding agent."""

__version__ = "0.1.0"