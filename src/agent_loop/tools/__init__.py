"""Built-in tools and the default registry."""

from __future__ import annotations

from ..registry import Tool, ToolRegistry
from .calc import CalcInput, calculate
from .remote import HttpTool, discover_tools
from .time import TimeInput, get_current_time

CALC_TOOL = Tool.from_model(
    "calc",
    "Evaluate an arithmetic expression and return the number.",
    CalcInput,
    calculate,
)

TIME_TOOL = Tool.from_model(
    "time",
    "Get the current time for a timezone.",
    TimeInput,
    get_current_time,
)


def default_registry(tool_server_url: str | None = None, timeout_s: float = 10.0) -> ToolRegistry:
    """Registry with the built-in tools, plus any a remote server offers."""
    registry = ToolRegistry([CALC_TOOL, TIME_TOOL])
    if tool_server_url:
        for tool in discover_tools(tool_server_url, timeout_s=timeout_s):
            registry.register(tool)
    return registry


__all__ = [
    "CALC_TOOL",
    "TIME_TOOL",
    "HttpTool",
    "default_registry",
    "discover_tools",
]
