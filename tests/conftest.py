import asyncio

import pytest

from agent_loop.recorder import BehaviorRecorder
from agent_loop.registry import Tool, ToolRegistry
from agent_loop.tools import CALC_TOOL


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([CALC_TOOL])


@pytest.fixture
def recorder(tmp_path) -> BehaviorRecorder:
    return BehaviorRecorder(tmp_path)


@pytest.fixture
def sleepy_tools() -> tuple[ToolRegistry, list[str]]:
    """Two async tools; ``slow`` finishes after ``fast``."""
    finished: list[str] = []

    async def slow(args):
        await asyncio.sleep(0.05)
        finished.append("slow")
        return {"tool": "slow", "n": args.get("n")}

    async def fast(args):
        finished.append("fast")
        return {"tool": "fast", "n": args.get("n")}

    registry = ToolRegistry(
        [
            Tool("slow", "Sleeps before answering.", slow),
            Tool("fast", "Answers at once.", fast),
        ]
    )
    return registry, finished
