"""Unified tool calling layer.

This isolates tool invocation details (lookup, validation, errors, timing)
from the loop. Every failure comes back as a ``ToolCallResult`` carrying a
``ToolError``; nothing raised by a tool escapes ``dispatch``.
"""

from __future__ import annotations

import asyncio
import time
from contextvars import ContextVar
from typing import Sequence

from .errors import ToolExecutionError
from .logging import get_logger
from .messages import ToolCallRequest, ToolCallResult, ToolError
from .registry import ToolRegistry

logger = get_logger("tool_broker")

# Trace id of the interaction a tool call belongs to, for tools that forward it.
current_trace_id: ContextVar[str | None] = ContextVar("current_trace_id", default=None)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ToolBroker:
    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    async def dispatch(self, requests: Sequence[ToolCallRequest], trace_id: str) -> list[ToolCallResult]:
        """Run a batch concurrently and return results in request order."""
        completed = await asyncio.gather(*(self.call_tool(request, trace_id) for request in requests))
        by_id = {result.id: result for result in completed}
        return [by_id[request.id] for request in requests]

    async def call_tool(self, request: ToolCallRequest, trace_id: str) -> ToolCallResult:
        current_trace_id.set(trace_id)
        start = time.perf_counter()
        tool = self._registry.resolve(request.name)
        if tool is None:
            return self._failed(
                request,
                ToolError(code="NOT_FOUND", message=f"Unknown tool: {request.name}"),
                start,
                trace_id,
            )
        try:
            output = await tool.invoke(dict(request.arguments))
        except ToolExecutionError as exc:
            error = ToolError(code=exc.code, message=exc.message, details=exc.details or None)
            return self._failed(request, error, start, trace_id)
        except Exception as exc:  # noqa: BLE001
            error = ToolError(code="TOOL_ERROR", message=str(exc) or type(exc).__name__)
            return self._failed(request, error, start, trace_id)

        latency_ms = _elapsed_ms(start)
        logger.info(
            "tool_call",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "tool": request.name,
                    "tool_call_id": request.id,
                    "latency_ms": latency_ms,
                    "ok": True,
                }
            },
        )
        return ToolCallResult(id=request.id, name=request.name, output=output, elapsed_ms=latency_ms)

    def _failed(
        self,
        request: ToolCallRequest,
        error: ToolError,
        start: float,
        trace_id: str,
    ) -> ToolCallResult:
        latency_ms = _elapsed_ms(start)
        logger.info(
            "tool_call_failed",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "tool": request.name,
                    "tool_call_id": request.id,
                    "latency_ms": latency_ms,
                    "ok": False,
                    "error_code": error.code,
                    "error": error.message,
                }
            },
        )
        return ToolCallResult(id=request.id, name=request.name, error=error, elapsed_ms=latency_ms)
