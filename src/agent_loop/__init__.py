"""Tool-calling conversation loop with pluggable model backends."""

from __future__ import annotations

from .agent import Agent, AgentBuilder, Conversation, RetryPolicy
from .backends import MockBackend, ModelBackend, OpenAIBackend, ScriptedBackend
from .errors import (
    AgentLoopError,
    BackendError,
    DuplicateToolError,
    MaxIterationsExceededError,
    ProtocolViolationError,
    RecorderError,
    RegistryBusyError,
    ToolExecutionError,
)
from .messages import LLMResponse, Message, ToolCallRequest, ToolCallResult, ToolError, ToolSpec
from .recorder import BehaviorRecorder, InteractionRecord, RecordedToolCall
from .registry import Tool, ToolRegistry
from .state import Interaction

__all__ = [
    "Agent",
    "AgentBuilder",
    "AgentLoopError",
    "BackendError",
    "BehaviorRecorder",
    "Conversation",
    "DuplicateToolError",
    "Interaction",
    "InteractionRecord",
    "LLMResponse",
    "MaxIterationsExceededError",
    "Message",
    "MockBackend",
    "ModelBackend",
    "OpenAIBackend",
    "ProtocolViolationError",
    "RecordedToolCall",
    "RecorderError",
    "RegistryBusyError",
    "RetryPolicy",
    "ScriptedBackend",
    "Tool",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolError",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolSpec",
]
