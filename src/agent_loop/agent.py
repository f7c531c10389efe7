"""Tool-use conversation loop.

One ``Agent.input`` call is one interaction:

    AwaitingModel -> AwaitingToolResults -> AwaitingModel -> ... -> Done

The backend is called with the full history; requested tools run
concurrently and their results are appended in request order. Tool
failures are folded into the history as data. Backend and protocol
failures end the interaction, as does running out of iterations.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from .backends import MockBackend, ModelBackend, OpenAIBackend
from .errors import BackendError, MaxIterationsExceededError, ProtocolViolationError
from .logging import get_logger
from .messages import LLMResponse, Message, validate_history
from .recorder import BehaviorRecorder, InteractionRecord, InteractionRecorder, RecordedToolCall, now_utc_iso
from .registry import ToolRegistry
from .state import ConversationState, Interaction
from .tool_broker import ToolBroker

if TYPE_CHECKING:
    from .settings import AgentSettings

logger = get_logger("agent")

DEFAULT_MAX_ITERATIONS = 10


@dataclass(frozen=True)
class RetryPolicy:
    """Immediate retries for backend errors flagged retryable.

    Backoff, if wanted, belongs inside the backend itself.
    """

    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


class Agent:
    def __init__(
        self,
        *,
        name: str,
        backend: ModelBackend,
        registry: ToolRegistry | None = None,
        recorder: InteractionRecorder | None = None,
        system_prompt: str | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        retry_policy: RetryPolicy | None = None,
        model: str | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.name = name
        self.backend = backend
        self.registry = registry if registry is not None else ToolRegistry()
        self.recorder = recorder
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.retry_policy = retry_policy or RetryPolicy()
        self.model = model or getattr(backend, "model", None) or type(backend).__name__
        self._broker = ToolBroker(self.registry)

    @staticmethod
    def builder() -> "AgentBuilder":
        return AgentBuilder()

    @classmethod
    def from_settings(
        cls,
        settings: AgentSettings,
        *,
        registry: ToolRegistry | None = None,
        backend: ModelBackend | None = None,
        recorder: InteractionRecorder | None = None,
    ) -> "Agent":
        """Wire an agent from configuration; explicit arguments win."""
        if backend is None:
            backend = backend_from_settings(settings)
        if recorder is None and settings.record_enabled:
            recorder = BehaviorRecorder(settings.store_root)
        return cls(
            name=settings.agent_name,
            backend=backend,
            registry=registry,
            recorder=recorder,
            system_prompt=settings.system_prompt,
            max_iterations=settings.max_iterations,
            retry_policy=RetryPolicy(max_retries=settings.backend_max_retries),
        )

    def conversation(self, history: Sequence[Message] = ()) -> "Conversation":
        return Conversation(self, history)

    async def input(
        self,
        text: str,
        history: Sequence[Message] = (),
        *,
        trace_id: str | None = None,
    ) -> Interaction:
        """Run one interaction and return its answer and full history.

        Raises:
            BackendError: the backend failed (after retries if retryable).
            ProtocolViolationError: the backend response was malformed.
            MaxIterationsExceededError: no final answer within the cap.
        """
        trace_id = trace_id or str(uuid.uuid4())
        timestamp = now_utc_iso()
        started = time.perf_counter()
        state = self._start(text, history)

        with self.registry.in_flight():
            answer = await self._drive(state, trace_id)

        latency_ms = int((time.perf_counter() - started) * 1000)
        record = InteractionRecord(
            agent=self.name,
            task=text,
            timestamp=timestamp,
            messages=tuple(state.messages),
            tool_calls=tuple(state.tool_calls),
            metadata={
                "model": self.model,
                "trace_id": trace_id,
                "iterations": state.iterations,
                "backend_calls": state.backend_calls,
                "latency_ms": latency_ms,
            },
        )
        recorder_error = None
        if self.recorder is not None:
            recorder_error = await self.recorder.record(record)

        logger.info(
            "interaction_done",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "agent": self.name,
                    "iterations": state.iterations,
                    "backend_calls": state.backend_calls,
                    "tool_calls": len(state.tool_calls),
                    "latency_ms": latency_ms,
                    "recorded": self.recorder is not None and recorder_error is None,
                }
            },
        )
        return Interaction(
            answer=answer,
            messages=tuple(state.messages),
            tool_calls=tuple(state.tool_calls),
            record=record,
            trace_id=trace_id,
            iterations=state.iterations,
            recorder_error=recorder_error,
        )

    def _start(self, text: str, history: Sequence[Message]) -> ConversationState:
        messages = list(history)
        validate_history(messages)
        # An existing system message wins over the configured prompt.
        if self.system_prompt and not (messages and messages[0].role == "system"):
            messages.insert(0, Message.system(self.system_prompt))
        messages.append(Message.user(text))
        return ConversationState(messages=messages)

    async def _drive(self, state: ConversationState, trace_id: str) -> str:
        while True:
            response = await self._call_backend(state, trace_id)
            state.backend_calls += 1

            if response.is_final:
                state.append(Message.assistant(response.text))
                return response.text

            duplicates = [call_id for call_id, n in Counter(c.id for c in response.tool_calls).items() if n > 1]
            if duplicates:
                raise ProtocolViolationError(
                    f"Duplicate tool call ids in one turn: {', '.join(sorted(duplicates))}",
                    state.messages,
                )
            state.append(Message.assistant(response.text, response.tool_calls))

            results = await self._broker.dispatch(response.tool_calls, trace_id)
            for request, result in zip(response.tool_calls, results):
                state.append(Message.tool(result))
                state.tool_calls.append(
                    RecordedToolCall(
                        name=request.name,
                        args=request.arguments,
                        result=result.payload(),
                        timing_ms=result.elapsed_ms,
                    )
                )

            state.iterations += 1
            if state.iterations >= self.max_iterations:
                logger.info(
                    "max_iterations_exceeded",
                    extra={"extra": {"trace_id": trace_id, "max_iterations": self.max_iterations}},
                )
                raise MaxIterationsExceededError(self.max_iterations, state.messages)

    async def _call_backend(self, state: ConversationState, trace_id: str) -> LLMResponse:
        specs = self.registry.list_specs()
        attempt = 0
        while True:
            start = time.perf_counter()
            try:
                response = await self.backend.chat(tuple(state.messages), specs)
            except BackendError as exc:
                logger.info(
                    "llm_error",
                    extra={
                        "extra": {
                            "trace_id": trace_id,
                            "attempt": attempt,
                            "retryable": exc.retryable,
                            "error": exc.message,
                        }
                    },
                )
                if not exc.retryable or attempt >= self.retry_policy.max_retries:
                    exc.history = tuple(state.messages)
                    raise
                attempt += 1
                continue

            logger.info(
                "llm_call",
                extra={
                    "extra": {
                        "trace_id": trace_id,
                        "model": self.model,
                        "latency_ms": int((time.perf_counter() - start) * 1000),
                        "tool_calls": [call.name for call in response.tool_calls],
                        "final": response.is_final,
                    }
                },
            )
            return response


class Conversation:
    """History threaded through sequential ``input`` calls.

    Calls on one conversation are serialized by a lock; a failed call leaves
    the history as it was.
    """

    def __init__(self, agent: Agent, history: Sequence[Message] = ()) -> None:
        validate_history(history)
        self._agent = agent
        self._history: tuple[Message, ...] = tuple(history)
        self._lock = asyncio.Lock()

    @property
    def history(self) -> tuple[Message, ...]:
        return self._history

    async def input(self, text: str, *, trace_id: str | None = None) -> Interaction:
        async with self._lock:
            interaction = await self._agent.input(text, self._history, trace_id=trace_id)
            self._history = interaction.messages
            return interaction


class AgentBuilder:
    """Fluent construction; ``backend`` is the only required piece."""

    def __init__(self) -> None:
        self._name = "default"
        self._backend: ModelBackend | None = None
        self._registry: ToolRegistry | None = None
        self._recorder: InteractionRecorder | None = None
        self._system_prompt: str | None = None
        self._max_iterations = DEFAULT_MAX_ITERATIONS
        self._retry_policy: RetryPolicy | None = None
        self._model: str | None = None

    def name(self, name: str) -> "AgentBuilder":
        self._name = name
        return self

    def backend(self, backend: ModelBackend) -> "AgentBuilder":
        self._backend = backend
        return self

    def registry(self, registry: ToolRegistry) -> "AgentBuilder":
        self._registry = registry
        return self

    def recorder(self, recorder: InteractionRecorder) -> "AgentBuilder":
        self._recorder = recorder
        return self

    def system_prompt(self, prompt: str | None) -> "AgentBuilder":
        self._system_prompt = prompt
        return self

    def max_iterations(self, value: int) -> "AgentBuilder":
        self._max_iterations = value
        return self

    def retry_policy(self, policy: RetryPolicy) -> "AgentBuilder":
        self._retry_policy = policy
        return self

    def model(self, model: str) -> "AgentBuilder":
        self._model = model
        return self

    def build(self) -> Agent:
        if self._backend is None:
            raise ValueError("An Agent needs a backend")
        return Agent(
            name=self._name,
            backend=self._backend,
            registry=self._registry,
            recorder=self._recorder,
            system_prompt=self._system_prompt,
            max_iterations=self._max_iterations,
            retry_policy=self._retry_policy,
            model=self._model,
        )


def backend_from_settings(settings: AgentSettings) -> ModelBackend:
    # Offline mode when explicitly requested or when no key is configured.
    if settings.mock_llm or not settings.openai_api_key:
        return MockBackend()
    return OpenAIBackend(
        model=settings.model,
        api_key=settings.openai_api_key,
        base_url=settings.base_url,
        temperature=settings.temperature,
        timeout_s=settings.openai_timeout_s,
    )
