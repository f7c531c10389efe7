"""Replay of recorded interactions.

Re-invokes the tool calls of an ``InteractionRecord`` against a registry,
round by round, so a recorded run can be compared with a fresh one.
"""

from __future__ import annotations

import uuid
from typing import Any, Sequence

from .messages import Message
from .recorder import InteractionRecord, RecordedToolCall
from .registry import ToolRegistry
from .tool_broker import ToolBroker


def replay_history(record: InteractionRecord) -> list[Message]:
    """Messages of ``record`` up to (not including) its final answer."""
    messages = list(record.messages)
    if messages and messages[-1].role == "assistant" and not messages[-1].tool_calls:
        messages.pop()
    return messages


async def replay_tool_calls(
    record: InteractionRecord,
    registry: ToolRegistry,
    *,
    trace_id: str | None = None,
) -> list[RecordedToolCall]:
    """Invoke every recorded request again, one round at a time."""
    trace_id = trace_id or str(uuid.uuid4())
    broker = ToolBroker(registry)
    replayed: list[RecordedToolCall] = []
    with registry.in_flight():
        for message in record.messages:
            if message.role != "assistant" or not message.tool_calls:
                continue
            results = await broker.dispatch(message.tool_calls, trace_id)
            for request, result in zip(message.tool_calls, results):
                replayed.append(
                    RecordedToolCall(
                        name=request.name,
                        args=request.arguments,
                        result=result.payload(),
                        timing_ms=result.elapsed_ms,
                    )
                )
    return replayed


def tool_call_shape(calls: Sequence[RecordedToolCall]) -> list[dict[str, Any]]:
    """Serialized tool calls without timings, for comparing runs."""
    return [
        {"name": call.name, "args": call.args, "result": call.result}
        for call in calls
    ]
