"""Deterministic backend that replays a fixed script of responses."""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable, Sequence, Union

from ..errors import BackendError
from ..messages import LLMResponse, Message, ToolSpec

Responder = Callable[[Sequence[Message], Sequence[ToolSpec]], Union[LLMResponse, Awaitable[LLMResponse]]]
Step = Union[LLMResponse, BackendError, Responder]


class ScriptedBackend:
    """Walks ``steps`` one per ``chat`` call.

    A step is an ``LLMResponse`` to return, a ``BackendError`` to raise, or
    a callable computing the response from the history. With ``cycle=True``
    the script restarts once exhausted; otherwise running past the end is
    a non-retryable error.
    """

    def __init__(self, steps: Sequence[Step], *, cycle: bool = False, model: str = "scripted") -> None:
        self.model = model
        self._steps = list(steps)
        self._cycle = cycle
        self._position = 0
        self.calls: list[tuple[Message, ...]] = []

    async def chat(self, history: Sequence[Message], tools: Sequence[ToolSpec]) -> LLMResponse:
        self.calls.append(tuple(history))
        if self._position >= len(self._steps):
            if not self._cycle or not self._steps:
                raise BackendError("Scripted backend exhausted", retryable=False)
            self._position = 0
        step = self._steps[self._position]
        self._position += 1
        if isinstance(step, BackendError):
            raise step
        if isinstance(step, LLMResponse):
            return step
        result = step(history, tools)
        if inspect.isawaitable(result):
            result = await result
        return result
