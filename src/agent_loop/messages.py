"""Shared conversation types (single source of truth).

The loop, the backends, the recorder and the HTTP layer all import these
models so the shapes cannot drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["system", "user", "assistant", "tool"]


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model in one assistant turn."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolError(BaseModel):
    """Normalized error payload carried by a failed tool call."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: dict[str, Any] | None = None


class ToolCallResult(BaseModel):
    """Outcome of one dispatched request: either ``output`` or ``error``."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    output: Any | None = None
    error: ToolError | None = None
    elapsed_ms: int = 0

    @model_validator(mode="after")
    def _exclusive(self) -> "ToolCallResult":
        if self.error is not None and self.output is not None:
            raise ValueError("A tool result carries either output or error, not both.")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    def payload(self) -> Any:
        """Value placed in the ``tool`` message and in the behavior record."""
        if self.error is not None:
            return {"error": self.error.model_dump()}
        return self.output


class Message(BaseModel):
    """One conversation turn. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Role
    content: Any = ""
    tool_calls: tuple[ToolCallRequest, ...] = Field(default=(), alias="toolCalls")
    tool_call_id: str | None = Field(default=None, alias="toolCallId")

    @model_validator(mode="after")
    def _check_role_fields(self) -> "Message":
        if self.tool_calls and self.role != "assistant":
            raise ValueError("Only assistant messages can carry tool calls.")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages must reference a tool_call_id.")
        return self

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role="system", content=text)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str = "", tool_calls: Sequence[ToolCallRequest] = ()) -> "Message":
        return cls(role="assistant", content=text, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, result: ToolCallResult) -> "Message":
        return cls(role="tool", content=result.payload(), tool_call_id=result.id)

    def to_record(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["toolCalls"] = [call.model_dump() for call in self.tool_calls]
        if self.tool_call_id is not None:
            data["toolCallId"] = self.tool_call_id
        return data


class LLMResponse(BaseModel):
    """Backend answer: final text, or a non-empty batch of tool calls."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()

    @property
    def is_final(self) -> bool:
        return not self.tool_calls

    @classmethod
    def final(cls, text: str) -> "LLMResponse":
        return cls(text=text)

    @classmethod
    def calls(cls, *requests: ToolCallRequest, text: str = "") -> "LLMResponse":
        if not requests:
            raise ValueError("LLMResponse.calls needs at least one request.")
        return cls(text=text, tool_calls=tuple(requests))


@dataclass(frozen=True)
class ToolSpec:
    """Name and argument schema advertised to the backend."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


def validate_history(messages: Sequence[Message]) -> None:
    """Check that every tool message answers a prior assistant request."""
    issued: set[str] = set()
    for message in messages:
        if message.role == "assistant":
            issued.update(call.id for call in message.tool_calls)
        elif message.role == "tool" and message.tool_call_id not in issued:
            raise ValueError(f"Tool message references unknown tool_call_id: {message.tool_call_id}")
