"""Protocol adapter for incoming requests.

Keep this layer thin so protocol changes do not affect the loop.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field

from agent_loop.agent import Agent
from agent_loop.settings import get_settings
from agent_loop.tools import default_registry


class AskRequest(BaseModel):
    query: str = Field(..., min_length=1)


class AskResponse(BaseModel):
    answer: str
    trace_id: str
    tool_calls: list[dict] | None = None
    recorder_error: str | None = None


@lru_cache(maxsize=1)
def get_agent() -> Agent:
    # One agent per process; the registry is shared read-only across requests.
    settings = get_settings()
    registry = default_registry(settings.tool_server_url, settings.request_timeout_s)
    return Agent.from_settings(settings, registry=registry)


async def handle_ask(payload: AskRequest, trace_id: str) -> AskResponse:
    agent = get_agent()
    interaction = await agent.input(payload.query, trace_id=trace_id)
    return AskResponse(
        answer=interaction.answer,
        trace_id=interaction.trace_id,
        tool_calls=[call.model_dump(by_alias=True) for call in interaction.tool_calls],
        recorder_error=interaction.recorder_error.message if interaction.recorder_error else None,
    )
