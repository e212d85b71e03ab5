"""Decorators for tracing MCP tool handlers."""

import functools
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import logfire

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


def trace_tool(tool_name: str) -> Callable[[ToolHandler], ToolHandler]:
    """Wrap a tool handler in a Logfire span recording outcome and duration."""

    def decorator(func: ToolHandler) -> ToolHandler:
        @functools.wraps(func)
        async def wrapper(arguments: dict[str, Any]) -> dict[str, Any]:
            with logfire.span(f"tool.execution.{tool_name}", tool_name=tool_name) as span:
                start_time = datetime.now()
                result = await func(arguments)

                span.set_attribute("tool.success", not result.get("isError", False))
                if result.get("isError"):
                    span.set_attribute("tool.error_type", result.get("errorType", "unknown"))
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                return result

        return wrapper

    return decorator
