"""FastAPI entry for the agent loop service."""

from __future__ import annotations

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agent_loop.errors import BackendError, MaxIterationsExceededError, ProtocolViolationError
from agent_loop.logging import configure_logging, get_logger
from agent_loop.settings import get_settings

from .executor import AskRequest, AskResponse, get_agent, handle_ask

app = FastAPI(title="Agent Loop Server", version="0.1.0")
logger = get_logger("server")


def _error(status_code: int, code: str, message: str, trace_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}, "trace_id": trace_id},
    )


@app.on_event("startup")
def log_startup_config() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        "server_config",
        extra={
            "extra": {
                "agent": settings.agent_name,
                "model": settings.model,
                "mock_llm": settings.mock_llm,
                "openai_key_set": bool(settings.openai_api_key),
                "max_iterations": settings.max_iterations,
                "tool_server_url": settings.tool_server_url,
                "record_enabled": settings.record_enabled,
            }
        },
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/agent-card")
def agent_card() -> dict[str, object]:
    agent = get_agent()
    return {
        "name": agent.name,
        "version": "0.1.0",
        "model": agent.model,
        "description": "Tool-calling conversation loop.",
        "endpoints": {"ask": "/v1/ask", "tools": "/tools"},
        "tools": agent.registry.names(),
    }


@app.get("/tools")
def list_tools() -> list[dict[str, object]]:
    return [
        {"name": spec.name, "description": spec.description, "input_schema": spec.parameters}
        for spec in get_agent().registry.list_specs()
    ]


@app.post("/v1/ask", response_model=AskResponse)
async def ask(payload: AskRequest, request: Request):
    # Preserve incoming trace_id if provided, else generate one.
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    try:
        return await handle_ask(payload, trace_id)
    except BackendError as exc:
        return _error(502, "BACKEND_ERROR", exc.message, trace_id)
    except ProtocolViolationError as exc:
        return _error(502, "PROTOCOL_VIOLATION", exc.message, trace_id)
    except MaxIterationsExceededError as exc:
        return _error(422, "MAX_ITERATIONS_EXCEEDED", str(exc), trace_id)
