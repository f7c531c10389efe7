"""Error taxonomy for the conversation loop.

Tool failures are converted to data by the tool broker; everything else
here propagates to the caller of ``Agent.input``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .messages import Message


class AgentLoopError(RuntimeError):
    """Base class for all errors raised by this package."""


class BackendError(AgentLoopError):
    """Transport or protocol failure talking to the model backend."""

    def __init__(self, message: str, *, retryable: bool = False, history: Sequence[Message] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.history = tuple(history)


class ProtocolViolationError(AgentLoopError):
    """The backend returned a malformed response. Never retried."""

    def __init__(self, message: str, history: Sequence[Message] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.history = tuple(history)


class MaxIterationsExceededError(AgentLoopError):
    def __init__(self, max_iterations: int, history: Sequence[Message]) -> None:
        super().__init__(f"Loop did not converge within {max_iterations} iterations")
        self.max_iterations = max_iterations
        self.history = tuple(history)


class ToolExecutionError(AgentLoopError):
    """Raised by tools; the broker turns it into a ``ToolError`` value."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class RecorderError(AgentLoopError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


class DuplicateToolError(AgentLoopError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Tool already registered: {name}")
        self.name = name


class RegistryBusyError(AgentLoopError):
    """The registry was mutated while an interaction was dispatching."""
