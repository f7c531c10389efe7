"""Model backend protocol.

A backend maps the conversation so far to either a final answer or a batch
of tool calls. It must be stateless across calls: everything it needs
travels in ``history``.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from ..messages import LLMResponse, Message, ToolSpec


@runtime_checkable
class ModelBackend(Protocol):
    async def chat(self, history: Sequence[Message], tools: Sequence[ToolSpec]) -> LLMResponse:
        """Return the next step.

        Raises:
            BackendError: on transport or protocol failure, flagged
                retryable or not.
        """
        ...
