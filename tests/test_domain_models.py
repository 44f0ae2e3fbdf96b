"""Tests for domain model serialisation."""
from __future__ import annotations

from basecamp.domain import Camp, ChatMessage, RunEvent, TokenUsage, ToolCall, ToolSpec


def test_tool_call_dict_form():
    assert ToolCall(name="read_file", arguments="{}", id="c1").to_dict() == {
        "id": "c1",
        "type": "function",
        "function": {"name": "read_file", "arguments": "{}"},
    }
    assert "id" not in ToolCall(name="x").to_dict()


def test_tool_call_from_dict_encodes_object_arguments():
    tc = ToolCall.from_dict({"id": "c", "function": {"name": "f", "arguments": {"a": 1}}})
    assert tc == ToolCall(name="f", arguments='{"a": 1}', id="c")


def test_chat_message_keys_in_fixed_order():
    msg = ChatMessage(role="tool", content="ok", name="read_file", tool_call_id="c1")
    assert list(msg.to_dict()) == ["role", "content", "name", "tool_call_id"]
    assert ChatMessage(role="user", content="hi").to_dict() == {"role": "user", "content": "hi"}


def test_tool_spec_kind_stays_off_the_wire():
    spec = ToolSpec(name="write_file", description="Write", kind="mutate")
    assert spec.to_dict() == {
        "type": "function",
        "function": {"name": "write_file", "description": "Write", "parameters": {"type": "object", "properties": {}}},
    }
    assert ToolSpec.from_dict({"name": "read_file", "kind": "read"}).kind == "read"
    assert ToolSpec.from_dict(spec.to_dict()).kind == "mutate"


def test_token_usage_plus_keeps_missing_counters_missing():
    total = TokenUsage(1, None, 2).plus(TokenUsage(3, None, None))
    assert total == TokenUsage(4, None, 2)


def test_run_event_omits_absent_fields():
    event = RunEvent(kind="run_completed", run_id="r", timestamp_ms=5, details={"requests": 2})
    assert event.to_dict() == {"kind": "run_completed", "run_id": "r", "timestamp_ms": 5, "details": {"requests": 2}}


def test_camp_from_dict():
    camp = Camp.from_dict({
        "config": {"id": "c1", "name": "Camp", "model": "m", "tools_enabled": True},
        "system_prompt": "sys",
        "memory": {"k": "v"},
        "transcript": [
            {"id": "1", "role": "assistant", "content": "", "tool_calls": [
                {"id": "t", "type": "function", "function": {"name": "f", "arguments": "{}"}},
            ]},
        ],
        "artifacts": [{"metadata": {"id": "a1", "title": "T", "usage_count": 3}, "body": "b"}],
    })
    assert camp.config.tools_enabled is True
    assert camp.transcript[0].tool_calls == [ToolCall(name="f", arguments="{}", id="t")]
    assert camp.artifacts[0].usage_count == 3
    assert camp.artifacts[0].body == "b"
