"""Tool registry: name -> executable capability plus its argument schema."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .errors import DuplicateToolError, RegistryBusyError, ToolExecutionError
from .messages import ToolSpec

ToolHandler = Callable[[Any], Any]


class Tool:
    """A callable capability.

    ``handler`` receives the validated ``input_model`` instance when one is
    declared, otherwise the raw argument dict. Sync handlers run in a worker
    thread so a batch of calls still overlaps.
    """

    def __init__(
        self,
        name: str,
        description: str,
        handler: ToolHandler | None = None,
        *,
        parameters: dict[str, Any] | None = None,
        input_model: type[BaseModel] | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.handler = handler
        self.input_model = input_model
        if parameters is None:
            parameters = input_model.model_json_schema() if input_model else {"type": "object", "properties": {}}
        self.parameters = parameters

    @classmethod
    def from_model(
        cls,
        name: str,
        description: str,
        input_model: type[BaseModel],
        handler: ToolHandler,
    ) -> "Tool":
        return cls(name, description, handler, input_model=input_model)

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.parameters)

    def _validate(self, arguments: dict[str, Any]) -> Any:
        if self.input_model is None:
            return arguments
        try:
            return self.input_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolExecutionError("INVALID_ARGUMENT", str(exc), {"tool": self.name}) from exc

    async def invoke(self, arguments: dict[str, Any]) -> Any:
        if self.handler is None:
            raise ToolExecutionError("NOT_IMPLEMENTED", f"Tool has no handler: {self.name}")
        payload = self._validate(arguments)
        if inspect.iscoroutinefunction(self.handler):
            result = await self.handler(payload)
        else:
            result = await asyncio.to_thread(self.handler, payload)
        try:
            return to_jsonable_python(result)
        except PydanticSerializationError as exc:
            raise ToolExecutionError(
                "TOOL_BAD_RESPONSE",
                f"Tool output is not JSON-serializable: {type(result).__name__}",
                {"tool": self.name},
            ) from exc

    def __repr__(self) -> str:
        return f"Tool(name={self.name!r})"


class ToolRegistry:
    """Ordered tool lookup.

    Mutable only between interactions: the loop holds ``in_flight()`` while
    it dispatches, and registration during that window is refused.
    """

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self._in_flight = 0
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> Tool:
        self._ensure_idle()
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        return tool

    def unregister(self, name: str) -> None:
        self._ensure_idle()
        self._tools.pop(name, None)

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
        input_model: type[BaseModel] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``register``."""

        def decorator(func: ToolHandler) -> ToolHandler:
            self.register(
                Tool(
                    name or func.__name__,
                    description or inspect.getdoc(func) or "",
                    func,
                    input_model=input_model,
                )
            )
            return func

        return decorator

    def resolve(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_specs(self) -> list[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    @contextmanager
    def in_flight(self) -> Iterator["ToolRegistry"]:
        self._in_flight += 1
        try:
            yield self
        finally:
            self._in_flight -= 1

    def _ensure_idle(self) -> None:
        if self._in_flight:
            raise RegistryBusyError("Cannot change tools while an interaction is in flight")

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
