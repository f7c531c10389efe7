"""Lightweight per-interaction state containers."""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import RecorderError
from .messages import Message
from .recorder import InteractionRecord, RecordedToolCall


@dataclass
class ConversationState:
    """Mutable state of one ``Agent.input`` call, owned by that call alone."""

    messages: list[Message] = field(default_factory=list)
    iterations: int = 0
    backend_calls: int = 0
    tool_calls: list[RecordedToolCall] = field(default_factory=list)

    def append(self, message: Message) -> None:
        self.messages.append(message)


@dataclass(frozen=True)
class Interaction:
    """What the caller gets back from a successful ``Agent.input``."""

    answer: str
    messages: tuple[Message, ...]
    tool_calls: tuple[RecordedToolCall, ...]
    record: InteractionRecord
    trace_id: str
    iterations: int = 0
    recorder_error: RecorderError | None = None