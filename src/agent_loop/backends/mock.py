"""Heuristic offline backend: enables end-to-end flows without a model."""

from __future__ import annotations

import re
from typing import Any, Sequence

from ..messages import LLMResponse, Message, ToolCallRequest, ToolSpec

_ARITHMETIC = re.compile(r"[-+*/()%.\d\s]*\d\s*[-+*/%]\s*[-+*/()%.\d\s]*\d[)\s]*")
_TIME = re.compile(r"时间|几点|\btime\b|\bclock\b", re.IGNORECASE)

FALLBACK_ANSWER = "I can evaluate arithmetic or tell the current time. What do you need?"


class MockBackend:
    model = "mock"

    async def chat(self, history: Sequence[Message], tools: Sequence[ToolSpec]) -> LLMResponse:
        if not history:
            return LLMResponse.final(FALLBACK_ANSWER)
        last = history[-1]
        if last.role == "tool":
            return LLMResponse.final(_summarize(_round_results(history)))

        available = {spec.name for spec in tools}
        query = str(last.content)
        match = _ARITHMETIC.search(query)
        if match and "calc" in available:
            return LLMResponse.calls(ToolCallRequest(id="mock_1", name="calc", arguments={"expr": match.group(0).strip()}))
        if _TIME.search(query) and "time" in available:
            return LLMResponse.calls(ToolCallRequest(id="mock_1", name="time", arguments={}))
        return LLMResponse.final(FALLBACK_ANSWER)


def _round_results(history: Sequence[Message]) -> list[Message]:
    results: list[Message] = []
    for message in reversed(history):
        if message.role != "tool":
            break
        results.append(message)
    results.reverse()
    return results


def _summarize(results: list[Message]) -> str:
    parts: list[str] = []
    for message in results:
        payload: Any = message.content
        if isinstance(payload, dict) and "error" in payload:
            parts.append(f"Tool call failed: {payload['error'].get('message')}")
        elif isinstance(payload, dict) and "iso" in payload:
            parts.append(f"Current time: {payload['iso']} ({payload.get('timezone')})")
        else:
            parts.append(str(payload))
    return "\n".join(parts)
