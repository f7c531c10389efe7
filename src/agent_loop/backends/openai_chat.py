"""OpenAI-compatible chat completions backend."""

from __future__ import annotations

import json
from typing import Any, Sequence

import openai
from openai import AsyncOpenAI

from ..errors import BackendError, ProtocolViolationError
from ..logging import get_logger
from ..messages import LLMResponse, Message, ToolCallRequest, ToolSpec

logger = get_logger("backend.openai")

# Transport-level failures worth another attempt.
_RETRYABLE = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def build_openai_tools(specs: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    """Translate internal tool specs into OpenAI tool schema."""
    tools: list[dict[str, Any]] = []
    for spec in specs:
        tools.append(
            {
                "type": "function",
                "function": {
                    "name": spec.name,
                    "description": spec.description,
                    "parameters": spec.parameters,
                },
            }
        )
    return tools


def _as_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False)


def to_openai_messages(history: Sequence[Message]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for message in history:
        if message.role == "tool":
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": message.tool_call_id,
                    "content": _as_text(message.content),
                }
            )
        elif message.role == "assistant" and message.tool_calls:
            messages.append(
                {
                    "role": "assistant",
                    "content": _as_text(message.content),
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments, ensure_ascii=False),
                            },
                        }
                        for call in message.tool_calls
                    ],
                }
            )
        else:
            messages.append({"role": message.role, "content": _as_text(message.content)})
    return messages


def _parse_arguments(raw: str | None, history: Sequence[Message]) -> dict[str, Any]:
    try:
        args = json.loads(raw or "{}")
    except ValueError as exc:
        raise ProtocolViolationError(f"Tool arguments are not valid JSON: {exc}", history) from exc
    if not isinstance(args, dict):
        raise ProtocolViolationError("Tool arguments must be a JSON object", history)
    return args


class OpenAIBackend:
    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.2,
        timeout_s: float = 20.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self._temperature = temperature
        # Retries are the loop's job, so the SDK's own retry loop is off.
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_s,
            max_retries=0,
        )

    async def chat(self, history: Sequence[Message], tools: Sequence[ToolSpec]) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(history),
            "temperature": self._temperature,
        }
        if tools:
            kwargs["tools"] = build_openai_tools(tools)
            kwargs["tool_choice"] = "auto"
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except _RETRYABLE as exc:
            raise BackendError(str(exc), retryable=True) from exc
        except openai.APIError as exc:
            raise BackendError(str(exc), retryable=False) from exc

        if not response.choices:
            raise ProtocolViolationError("Backend returned no choices", history)
        choice = response.choices[0]
        message = choice.message
        logger.debug(
            "openai_response",
            extra={
                "extra": {
                    "model": self.model,
                    "finish_reason": choice.finish_reason,
                    "tool_calls": len(message.tool_calls or []),
                }
            },
        )
        if not message.tool_calls:
            return LLMResponse.final(message.content or "")
        requests = [
            ToolCallRequest(
                id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments, history),
            )
            for call in message.tool_calls
        ]
        return LLMResponse.calls(*requests, text=message.content or "")
