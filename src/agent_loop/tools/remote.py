"""Tools served by a remote tool server over HTTP.

The server exposes ``GET /tools`` for discovery and ``POST /tools/{name}``
for invocation, answering with ``{ok, data, error, meta}``.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from ..errors import ToolExecutionError
from ..logging import get_logger
from ..registry import Tool
from ..tool_broker import current_trace_id

logger = get_logger("remote_tools")


class HttpTool(Tool):
    def __init__(
        self,
        name: str,
        description: str,
        *,
        base_url: str,
        parameters: dict[str, Any] | None = None,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(name, description, parameters=parameters)
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    async def invoke(self, arguments: dict[str, Any]) -> Any:
        url = f"{self.base_url}/tools/{self.name}"
        trace_id = current_trace_id.get()
        headers = {"x-trace-id": trace_id} if trace_id else {}
        start = time.time()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, trust_env=False, transport=self._transport
            ) as client:
                resp = await client.post(url, json=arguments, headers=headers)
        except httpx.RequestError as exc:
            raise ToolExecutionError("TOOL_UNAVAILABLE", str(exc) or type(exc).__name__) from exc
        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            "remote_tool_call",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "tool": self.name,
                    "latency_ms": latency_ms,
                    "status_code": resp.status_code,
                }
            },
        )
        if resp.status_code >= 500:
            raise ToolExecutionError("TOOL_UPSTREAM_5XX", f"Tool server error: {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ToolExecutionError("TOOL_BAD_RESPONSE", str(exc)) from exc
        if not isinstance(data, dict) or "ok" not in data:
            raise ToolExecutionError("TOOL_BAD_RESPONSE", "Response is not a tool envelope")
        if not data["ok"]:
            error = data.get("error") or {}
            raise ToolExecutionError(
                error.get("code", "TOOL_ERROR"),
                error.get("message", "Remote tool failed"),
                error.get("details"),
            )
        return data.get("data")


def discover_tools(
    base_url: str,
    *,
    timeout_s: float = 10.0,
    transport: httpx.BaseTransport | None = None,
) -> list[HttpTool]:
    """List the tools a remote server offers (``GET /tools``)."""
    url = f"{base_url.rstrip('/')}/tools"
    with httpx.Client(timeout=timeout_s, trust_env=False, transport=transport) as client:
        resp = client.get(url)
    resp.raise_for_status()
    return [
        HttpTool(
            item["name"],
            item.get("description", ""),
            base_url=base_url,
            parameters=item.get("input_schema"),
            timeout_s=timeout_s,
        )
        for item in resp.json()
    ]
