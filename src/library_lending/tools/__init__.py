"""
MCP tools for the library lending server.

Every lending operation is exposed as a tool: the issue lifecycle and its
lookups in ``issues``, fines and the fine configuration in ``fines``.
Each tool is a dictionary with its name, description, JSON input schema
and async handler; the server registers them from ``all_tools``.
"""

from .fines import fine_tools
from .issues import issue_tools

# Export all tools for server registration
all_tools = [*issue_tools, *fine_tools]

__all__ = ["all_tools", "fine_tools", "issue_tools"]
