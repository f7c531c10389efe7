"""Behavior recording for end-to-end interaction replay.

Each completed interaction is appended as one JSON document per line to
``<store_root>/agents/<agent>/behavior.json``. The file is never rewritten.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .errors import RecorderError
from .logging import get_logger
from .messages import Message

logger = get_logger("recorder")


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RecordedToolCall(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    timing_ms: int = Field(default=0, alias="timingMS")


class InteractionRecord(BaseModel):
    """One completed ``Agent.input`` call. Never mutated after creation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    agent: str
    task: str
    timestamp: str = Field(default_factory=now_utc_iso)
    messages: tuple[Message, ...] = ()
    tool_calls: tuple[RecordedToolCall, ...] = Field(default=(), alias="toolCalls")
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent,
            "task": self.task,
            "timestamp": self.timestamp,
            "messages": [message.to_record() for message in self.messages],
            "toolCalls": [call.model_dump(by_alias=True) for call in self.tool_calls],
            "metadata": dict(self.metadata),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_json_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "InteractionRecord":
        return cls.model_validate_json(text)


class InteractionRecorder(Protocol):
    async def record(self, record: InteractionRecord) -> RecorderError | None: ...


class BehaviorRecorder:
    """Append-only JSON Lines store, one file per agent identity.

    Writes for the same identity are serialized so concurrent interactions
    never interleave partial lines. The store root must exist; the
    per-agent directory is created on demand.
    """

    def __init__(self, store_root: str | Path) -> None:
        self._root = Path(store_root)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, agent: str) -> Path:
        return self._root / "agents" / agent / "behavior.json"

    async def record(self, record: InteractionRecord) -> RecorderError | None:
        """Append ``record``; return the failure instead of raising it."""
        path = self.path_for(record.agent)
        trace_id = record.metadata.get("trace_id")
        try:
            _check_identity(record.agent)
            # UnicodeEncodeError (lone surrogates) is a ValueError.
            data = (record.to_json() + "\n").encode("utf-8")
        except (TypeError, ValueError) as exc:
            return self._report(RecorderError(f"Cannot serialize record: {exc}", str(path)), trace_id)

        lock = self._locks.setdefault(record.agent, asyncio.Lock())
        async with lock:
            try:
                await asyncio.to_thread(self._append, path, data)
            except OSError as exc:
                return self._report(RecorderError(f"Cannot write record: {exc}", str(path)), trace_id)

        logger.info(
            "interaction_recorded",
            extra={"extra": {"trace_id": trace_id, "agent": record.agent, "path": str(path)}},
        )
        return None

    def load(self, agent: str) -> list[InteractionRecord]:
        path = self.path_for(agent)
        if not path.exists():
            return []
        records: list[InteractionRecord] = []
        with path.open(encoding="utf-8") as fh:
            for line in fh:
                if line.strip():
                    records.append(InteractionRecord.from_json(line))
        return records

    def _append(self, path: Path, data: bytes) -> None:
        if not self._root.is_dir():
            raise FileNotFoundError(f"Store root does not exist: {self._root}")
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("ab") as fh:
            fh.write(data)

    @staticmethod
    def _report(error: RecorderError, trace_id: str | None = None) -> RecorderError:
        logger.warning(
            "recorder_error",
            extra={"extra": {"trace_id": trace_id, "path": error.path, "error": error.message}},
        )
        return error


def _check_identity(agent: str) -> None:
    if not agent or agent in {".", ".."} or "/" in agent or "\\" in agent:
        raise ValueError(f"Invalid agent identity for a store path: {agent!r}")
