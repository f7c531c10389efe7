import asyncio

import pytest

from agent_loop.agent import Agent, RetryPolicy
from agent_loop.backends import ScriptedBackend
from agent_loop.errors import BackendError, MaxIterationsExceededError, ProtocolViolationError
from agent_loop.messages import LLMResponse, Message, ToolCallRequest
from agent_loop.registry import Tool, ToolRegistry


def _calc(expr: str, call_id: str = "call_1") -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name="calc", arguments={"expr": expr})


def _roles(messages) -> list[str]:
    return [m.role for m in messages]


@pytest.mark.asyncio
async def test_calc_round_then_final_answer(registry, recorder):
    backend = ScriptedBackend([LLMResponse.calls(_calc("2+2")), LLMResponse.final("4")])
    agent = Agent.builder().name("calc-agent").backend(backend).registry(registry).recorder(recorder).build()

    interaction = await agent.input("2+2?")

    assert "4" in interaction.answer
    assert len(interaction.tool_calls) == 1
    call = interaction.tool_calls[0]
    assert call.name == "calc"
    assert call.args == {"expr": "2+2"}
    assert call.result == 4
    assert _roles(interaction.messages) == ["user", "assistant", "tool", "assistant"]
    assert interaction.recorder_error is None
    assert [r.to_json_dict() for r in recorder.load("calc-agent")] == [interaction.record.to_json_dict()]


@pytest.mark.asyncio
async def test_failing_tool_becomes_data_and_loop_continues(registry):
    backend = ScriptedBackend(
        [
            LLMResponse.calls(ToolCallRequest(id="c1", name="calc", arguments={"expression": "2+2"})),
            LLMResponse.final("Sorry, the calculator rejected that."),
        ]
    )
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("2+2?")

    assert len(backend.calls) == 2
    tool_message = interaction.messages[2]
    assert tool_message.role == "tool"
    assert tool_message.tool_call_id == "c1"
    assert tool_message.content["error"]["code"] == "INVALID_ARGUMENT"
    # The second backend call saw the error.
    assert backend.calls[1][-1] == tool_message


@pytest.mark.asyncio
async def test_handler_exception_is_captured(registry):
    backend = ScriptedBackend([LLMResponse.calls(_calc("2+")), LLMResponse.final("bad input")])
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("2+?")

    assert interaction.tool_calls[0].result["error"]["code"] == "TOOL_ERROR"
    assert interaction.answer == "bad input"


@pytest.mark.asyncio
async def test_unknown_tool_yields_not_found(registry):
    backend = ScriptedBackend(
        [
            LLMResponse.calls(ToolCallRequest(id="c1", name="weather", arguments={})),
            LLMResponse.final("no weather"),
        ]
    )
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("weather?")

    assert interaction.tool_calls[0].result["error"]["code"] == "NOT_FOUND"
    assert interaction.answer == "no weather"


@pytest.mark.asyncio
async def test_never_converging_backend_hits_iteration_cap(registry, recorder):
    backend = ScriptedBackend([LLMResponse.calls(_calc("1+1"))], cycle=True)
    agent = Agent(name="loop", backend=backend, registry=registry, recorder=recorder, max_iterations=3)

    with pytest.raises(MaxIterationsExceededError) as info:
        await agent.input("loop forever")

    assert len(backend.calls) == 3
    assert info.value.max_iterations == 3
    assert _roles(info.value.history).count("assistant") == 3
    assert _roles(info.value.history).count("tool") == 3
    assert recorder.load("loop") == []


@pytest.mark.asyncio
async def test_non_retryable_backend_error_fails_immediately(registry):
    backend = ScriptedBackend([BackendError("unauthorized", retryable=False), LLMResponse.final("never")])
    agent = Agent(name="t", backend=backend, registry=registry, retry_policy=RetryPolicy(max_retries=5))

    with pytest.raises(BackendError) as info:
        await agent.input("hi")

    assert info.value.retryable is False
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_retryable_backend_error_is_retried(registry):
    backend = ScriptedBackend(
        [
            BackendError("timeout", retryable=True),
            BackendError("timeout", retryable=True),
            LLMResponse.final("ok"),
        ]
    )
    agent = Agent(name="t", backend=backend, registry=registry, retry_policy=RetryPolicy(max_retries=2))

    interaction = await agent.input("hi")

    assert interaction.answer == "ok"
    assert len(backend.calls) == 3
    assert _roles(interaction.messages).count("assistant") == 1


@pytest.mark.asyncio
async def test_retryable_backend_error_gives_up_after_policy(registry):
    backend = ScriptedBackend([BackendError("down", retryable=True)], cycle=True)
    agent = Agent(name="t", backend=backend, registry=registry, retry_policy=RetryPolicy(max_retries=1))

    with pytest.raises(BackendError):
        await agent.input("hi")

    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_results_follow_request_order_not_completion_order(sleepy_tools):
    registry, finished = sleepy_tools
    backend = ScriptedBackend(
        [
            LLMResponse.calls(
                ToolCallRequest(id="a", name="slow", arguments={"n": 1}),
                ToolCallRequest(id="b", name="fast", arguments={"n": 2}),
            ),
            LLMResponse.final("done"),
        ]
    )
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("go")

    assert finished == ["fast", "slow"]
    tool_messages = [m for m in interaction.messages if m.role == "tool"]
    assert [m.tool_call_id for m in tool_messages] == ["a", "b"]
    assert [c.name for c in interaction.tool_calls] == ["slow", "fast"]


@pytest.mark.asyncio
async def test_tool_batch_runs_concurrently():
    started: list[str] = []
    release = asyncio.Event()

    async def waiter(args):
        started.append(args["name"])
        if len(started) == 2:
            release.set()
        await asyncio.wait_for(release.wait(), timeout=1)
        return args["name"]

    registry = ToolRegistry([Tool("wait", "Waits for its sibling.", waiter)])
    backend = ScriptedBackend(
        [
            LLMResponse.calls(
                ToolCallRequest(id="1", name="wait", arguments={"name": "x"}),
                ToolCallRequest(id="2", name="wait", arguments={"name": "y"}),
            ),
            LLMResponse.final("both"),
        ]
    )
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("go")

    assert [c.result for c in interaction.tool_calls] == ["x", "y"]


@pytest.mark.asyncio
async def test_duplicate_tool_call_ids_are_a_protocol_violation(registry):
    backend = ScriptedBackend(
        [LLMResponse.calls(_calc("1+1", "dup"), _calc("2+2", "dup")), LLMResponse.final("x")]
    )
    agent = Agent(name="t", backend=backend, registry=registry, retry_policy=RetryPolicy(max_retries=3))

    with pytest.raises(ProtocolViolationError):
        await agent.input("hi")

    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_empty_response_is_a_final_empty_answer(registry):
    backend = ScriptedBackend([LLMResponse()])
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("hi")

    assert interaction.answer == ""
    assert interaction.messages[-1] == Message.assistant("")
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_system_prompt_is_prepended_once(registry):
    backend = ScriptedBackend([LLMResponse.final("one"), LLMResponse.final("two")])
    agent = Agent(name="t", backend=backend, registry=registry, system_prompt="be brief")

    first = await agent.input("a")
    second = await agent.input("b", first.messages)

    assert _roles(first.messages) == ["system", "user", "assistant"]
    assert _roles(second.messages) == ["system", "user", "assistant", "user", "assistant"]
    assert second.messages[0].content == "be brief"


@pytest.mark.asyncio
async def test_assistant_messages_match_backend_calls(registry):
    backend = ScriptedBackend(
        [
            LLMResponse.calls(_calc("1+1", "a"), _calc("2+2", "b")),
            LLMResponse.calls(_calc("3*3", "a")),
            LLMResponse.final("done"),
        ]
    )
    agent = Agent(name="t", backend=backend, registry=registry)

    interaction = await agent.input("sum things")

    assert _roles(interaction.messages).count("assistant") == len(backend.calls) == 3
    assert interaction.iterations == 2
    assert interaction.record.metadata["backend_calls"] == 3
    assert [c.result for c in interaction.tool_calls] == [2, 4, 9]


@pytest.mark.asyncio
async def test_registry_is_locked_while_dispatching(registry):
    seen: list[bool] = []

    async def inspect_registry(args):
        seen.append(registry.busy)
        return "ok"

    registry.register(Tool("inspect_registry", "Reports registry state.", inspect_registry))
    backend = ScriptedBackend(
        [LLMResponse.calls(ToolCallRequest(id="p", name="inspect_registry")), LLMResponse.final("ok")]
    )
    agent = Agent(name="t", backend=backend, registry=registry)

    await agent.input("inspect_registry")

    assert seen == [True]
    assert registry.busy is False


@pytest.mark.asyncio
async def test_cancellation_writes_no_record(recorder):
    entered = asyncio.Event()
    cancelled = asyncio.Event()

    async def hang(args):
        entered.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    registry = ToolRegistry([Tool("hang", "Never returns.", hang)])
    backend = ScriptedBackend([LLMResponse.calls(ToolCallRequest(id="h", name="hang"))])
    agent = Agent(name="cancel", backend=backend, registry=registry, recorder=recorder)

    task = asyncio.create_task(agent.input("wait"))
    await asyncio.wait_for(entered.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert cancelled.is_set()
    assert recorder.load("cancel") == []


@pytest.mark.asyncio
async def test_recorder_failure_does_not_fail_interaction(tmp_path, registry):
    from agent_loop.recorder import BehaviorRecorder

    backend = ScriptedBackend([LLMResponse.final("fine")])
    recorder = BehaviorRecorder(tmp_path / "missing")
    agent = Agent(name="t", backend=backend, registry=registry, recorder=recorder)

    interaction = await agent.input("hi")

    assert interaction.answer == "fine"
    assert interaction.recorder_error is not None
    assert "missing" in interaction.recorder_error.path


@pytest.mark.asyncio
async def test_conversation_threads_history_and_serializes(registry):
    backend = ScriptedBackend([LLMResponse.final("first"), LLMResponse.final("second")])
    agent = Agent(name="t", backend=backend, registry=registry)
    conversation = agent.conversation()

    await asyncio.gather(conversation.input("a"), conversation.input("b"))

    assert _roles(conversation.history) == ["user", "assistant", "user", "assistant"]
    # The second call saw the first call's full exchange.
    assert len(backend.calls[1]) == 3


@pytest.mark.asyncio
async def test_conversation_keeps_history_on_failure(registry):
    backend = ScriptedBackend([LLMResponse.final("first"), BackendError("boom")])
    conversation = Agent(name="t", backend=backend, registry=registry).conversation()

    await conversation.input("a")
    with pytest.raises(BackendError):
        await conversation.input("b")

    assert _roles(conversation.history) == ["user", "assistant"]


@pytest.mark.asyncio
async def test_history_with_orphan_tool_message_is_rejected(registry):
    agent = Agent(name="t", backend=ScriptedBackend([LLMResponse.final("x")]), registry=registry)
    orphan = Message(role="tool", content=1, tool_call_id="nope")

    with pytest.raises(ValueError):
        await agent.input("hi", [Message.user("q"), orphan])


def test_builder_requires_backend():
    with pytest.raises(ValueError):
        Agent.builder().name("x").build()


def test_max_iterations_must_be_positive():
    with pytest.raises(ValueError):
        Agent(name="x", backend=ScriptedBackend([]), max_iterations=0)


@pytest.mark.asyncio
async def test_backend_error_carries_partial_history(registry):
    backend = ScriptedBackend([LLMResponse.calls(_calc("2+2")), BackendError("down")])
    agent = Agent(name="t", backend=backend, registry=registry)

    with pytest.raises(BackendError) as info:
        await agent.input("2+2?")

    assert _roles(info.value.history) == ["user", "assistant", "tool"]
    assert info.value.history[-1].content == 4


@pytest.mark.asyncio
async def test_unencodable_task_is_reported_not_raised(tmp_path, registry):
    from agent_loop.recorder import BehaviorRecorder

    backend = ScriptedBackend([LLMResponse.final("ok")])
    recorder = BehaviorRecorder(tmp_path)
    agent = Agent(name="t", backend=backend, registry=registry, recorder=recorder)

    interaction = await agent.input("hi \ud800")

    assert interaction.answer == "ok"
    assert interaction.recorder_error is not None
    assert not recorder.path_for("t").exists()
