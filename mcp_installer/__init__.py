"""MCP server installer — analyze, plan, execute, verify, register."""

__version__ = "0.1.0"
