"""Tests for run_tool_use_loop: state transitions, ceiling, id filling, hooks."""
from __future__ import annotations

import asyncio
import json
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from basecamp.application.hooks import TelemetryHooks
from basecamp.application.tool_gateway import ToolGateway
from basecamp.application.tool_loop import clamp_max_iterations, run_tool_use_loop
from basecamp.domain import (
    ChatCompletion,
    ChatMessage,
    ComposedRequest,
    EmptyOutputError,
    LoopExceededError,
    TokenUsage,
    ToolCall,
    ToolSpec,
)
from basecamp.infrastructure.approval import InMemoryApprovalBroker


class ScriptedChatClient:
    """Returns the queued completions in order and records every request."""

    def __init__(self, completions: List[ChatCompletion]) -> None:
        self._completions = list(completions)
        self.requests: List[ComposedRequest] = []

    async def complete(self, request, *, correlation_id=None, hooks=None):
        self.requests.append(request)
        if len(self._completions) > 1:
            return self._completions.pop(0)
        return self._completions[0]

    async def stream(self, request, on_token, *, correlation_id=None, hooks=None):  # pragma: no cover
        raise AssertionError("tool loop must not stream")


def _text(text: str, usage: Optional[TokenUsage] = None, model: str = "openai/gpt-4o-mini") -> ChatCompletion:
    return ChatCompletion(text=text, usage=usage or TokenUsage(), model=model)


def _tools(*calls: ToolCall, text: str = "") -> ChatCompletion:
    return ChatCompletion(text=text, tool_calls=list(calls), usage=TokenUsage(1, 1, 2), model="openai/gpt-4o-mini")


READ_FILE = ToolSpec(name="read_file", description="Read a file", kind="read")
BASE_MESSAGES = [ChatMessage(role="system", content="sys"), ChatMessage(role="user", content="read project.md")]


def _gateway(executor, **kwargs) -> ToolGateway:
    kwargs.setdefault("approval_policy", "auto-safe")
    return ToolGateway(
        executor,
        approval_broker=kwargs.pop("approval_broker", InMemoryApprovalBroker()),
        tool_kinds={"read_file": "read"},
        **kwargs,
    )


async def _run(client, gateway, on_token=None, **kwargs):
    return await run_tool_use_loop(
        "camp-1",
        BASE_MESSAGES,
        [READ_FILE],
        chat_client=client,
        gateway=gateway,
        on_token=on_token or (lambda _t: None),
        model="openai/gpt-4o-mini",
        temperature=0.3,
        max_tokens=256,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Completed without tools
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_no_tool_turn_completes_in_one_request():
    client = ScriptedChatClient([_text("hello world", TokenUsage(1, 1, 2))])
    tokens = []
    executor = AsyncMock()
    result = await _run(client, _gateway(executor), on_token=tokens.append)

    assert result.output_text == "hello world"
    assert len(result.requests) == 1
    assert tokens == ["hello world"]
    assert result.usage == TokenUsage(1, 1, 2)
    assert [m.role for m in result.new_messages] == ["assistant"]
    executor.assert_not_awaited()


@pytest.mark.asyncio
async def test_blank_final_text_raises_empty_output():
    client = ScriptedChatClient([_text("   ")])
    with pytest.raises(EmptyOutputError, match="Model returned an empty response."):
        await _run(client, _gateway(AsyncMock()))


# ---------------------------------------------------------------------------
# Tool rounds
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_tool_turn_issues_two_requests():
    blob = json.dumps({"path": "project.md", "content": "# Project"})
    executor = AsyncMock(return_value=blob)
    call = ToolCall(name="read_file", arguments='{"path":"project.md"}', id="call_1")
    client = ScriptedChatClient([_tools(call), _text("done", TokenUsage(3, 1, 4))])

    result = await _run(client, _gateway(executor))

    assert result.output_text == "done"
    assert len(result.requests) == 2
    assert [m.role for m in result.new_messages] == ["assistant", "tool", "assistant"]
    assert result.new_messages[0].tool_calls == [call]
    assert result.new_messages[1].tool_call_id == "call_1"
    assert result.new_messages[1].name == "read_file"
    assert result.new_messages[1].content == blob
    assert result.usage == TokenUsage(4, 2, 6)
    executor.assert_awaited_once_with("camp-1", call)

    second = client.requests[1]
    assert second.messages[: len(BASE_MESSAGES)] == BASE_MESSAGES
    assert second.messages[len(BASE_MESSAGES):] == result.new_messages[:2]
    assert second.tool_choice == "auto"
    assert second.stream is False


@pytest.mark.asyncio
async def test_requests_are_snapshots():
    call = ToolCall(name="read_file", arguments="{}", id="c")
    client = ScriptedChatClient([_tools(call), _text("ok")])
    result = await _run(client, _gateway(AsyncMock(return_value="x")))
    assert len(result.requests[0].messages) == len(BASE_MESSAGES)
    assert len(result.requests[1].messages) == len(BASE_MESSAGES) + 2


@pytest.mark.asyncio
async def test_tool_calls_run_sequentially_in_order():
    order = []

    async def executor(scope_id, tool_call):
        order.append(("start", tool_call.id))
        await asyncio.sleep(0)
        order.append(("end", tool_call.id))
        return "ok"

    calls = [ToolCall(name="read_file", arguments="{}", id=f"c{i}") for i in range(3)]
    client = ScriptedChatClient([_tools(*calls), _text("fin")])
    result = await _run(client, _gateway(executor))

    assert order == [("start", "c0"), ("end", "c0"), ("start", "c1"), ("end", "c1"), ("start", "c2"), ("end", "c2")]
    assert [m.tool_call_id for m in result.new_messages if m.role == "tool"] == ["c0", "c1", "c2"]


@pytest.mark.asyncio
async def test_missing_tool_call_ids_are_filled():
    calls = [ToolCall(name="read_file", arguments="{}"), ToolCall(name="read_file", arguments="{}")]
    client = ScriptedChatClient([_tools(*calls), _tools(ToolCall(name="read_file")), _text("end")])
    result = await _run(client, _gateway(AsyncMock(return_value="x")))

    ids = [m.tool_call_id for m in result.new_messages if m.role == "tool"]
    assert ids == ["tool-call-0-0", "tool-call-0-1", "tool-call-1-0"]


@pytest.mark.asyncio
async def test_iteration_ceiling_names_limit_and_executor_ran_twice():
    executor = AsyncMock(return_value="again")
    client = ScriptedChatClient([_tools(ToolCall(name="read_file", arguments="{}", id="c"))])

    with pytest.raises(LoopExceededError, match="exceeded 2 iterations") as excinfo:
        await _run(client, _gateway(executor), max_iterations=2)
    assert excinfo.value.max_iterations == 2
    assert executor.await_count == 2
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_rejected_call_feeds_error_back_and_loop_continues():
    broker = InMemoryApprovalBroker()
    broker.submit_decision("c1", "reject")
    executor = AsyncMock()
    client = ScriptedChatClient([_tools(ToolCall(name="write_file", arguments="{}", id="c1")), _text("ok, skipped")])
    gateway = ToolGateway(executor, approval_broker=broker, approval_policy="manual")

    result = await _run(client, gateway)

    tool_msg = result.new_messages[1]
    assert json.loads(tool_msg.content) == {"error": "Tool call rejected by user."}
    assert result.output_text == "ok, skipped"
    assert len(client.requests) == 2
    executor.assert_not_awaited()


@pytest.mark.asyncio
async def test_assistant_tool_turn_content_is_trimmed():
    call = ToolCall(name="read_file", arguments="{}", id="c")
    client = ScriptedChatClient([_tools(call, text="  let me look  "), _text("ok")])
    result = await _run(client, _gateway(AsyncMock(return_value="x")))
    assert result.new_messages[0].content == "let me look"


# ---------------------------------------------------------------------------
# Hooks and clamping
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_tool_hooks_fire_and_failures_do_not_change_outcome():
    starts, ends = [], []

    def broken(_event):
        raise RuntimeError("hook broke")

    call = ToolCall(name="read_file", arguments='{"path":"a"}', id="c")
    executor = AsyncMock(side_effect=OSError("denied"))
    hooks = TelemetryHooks(on_tool_call_start=starts.append, on_tool_call_end=ends.append)
    client = ScriptedChatClient([_tools(call), _text("ok")])
    await _run(client, _gateway(executor), hooks=hooks, correlation_id="corr")

    assert starts[0].tool_name == "read_file"
    assert starts[0].arguments == '{"path":"a"}'
    assert ends[0].success is False
    assert ends[0].correlation_id == "corr"

    client = ScriptedChatClient([_tools(call), _text("ok")])
    hooks = TelemetryHooks(on_tool_call_start=broken, on_tool_call_end=broken)
    result = await _run(client, _gateway(AsyncMock(return_value="y")), hooks=hooks)
    assert result.output_text == "ok"


@pytest.mark.parametrize("value,expected", [(None, 10), (0, 1), (-5, 1), (1, 1), (50, 50), (51, 50), (500, 50)])
def test_clamp_max_iterations(value, expected):
    assert clamp_max_iterations(value) == expected
