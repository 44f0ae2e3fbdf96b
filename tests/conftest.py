"""Pytest fixtures and helpers for basecamp tests."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from basecamp.domain import Camp, CampArtifact, CampConfig, CampMessage


@pytest.fixture(autouse=True)
def _reset_config_cache():
    """Clear the load_config LRU cache and reset _env before (and after) every test."""
    from basecamp.config import loader as config_loader
    config_loader.load_config.cache_clear()
    config_loader._env = None
    yield
    config_loader.load_config.cache_clear()
    config_loader._env = None


@pytest.fixture(autouse=True)
def _reset_telemetry():
    from basecamp.infrastructure import telemetry
    telemetry.reset_for_testing()
    yield
    telemetry.reset_for_testing()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_camp(
    *,
    system_prompt: str = "You are helpful.",
    memory: Optional[Dict[str, Any]] = None,
    transcript: Optional[List[CampMessage]] = None,
    artifacts: Optional[List[CampArtifact]] = None,
    tools_enabled: bool = False,
    model: str = "openai/gpt-4o-mini",
) -> Camp:
    return Camp(
        config=CampConfig(id="camp-1", name="Test camp", model=model, tools_enabled=tools_enabled),
        system_prompt=system_prompt,
        memory=memory if memory is not None else {},
        transcript=transcript or [],
        artifacts=artifacts or [],
    )


def completion_body(
    content: Any = "",
    *,
    tool_calls: Optional[list] = None,
    model: str = "openai/gpt-4o-mini",
    usage: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
    """Minimal non-streaming chat-completion response body."""
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    body: Dict[str, Any] = {"id": "gen-1", "model": model, "choices": [{"index": 0, "message": message}]}
    if usage is not None:
        body["usage"] = usage
    return body


def tool_call_body(name: str, args: Dict[str, Any], call_id: Optional[str] = "call_1") -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": "function", "function": {"name": name, "arguments": json.dumps(args)}}
    if call_id is not None:
        data["id"] = call_id
    return data


def sse_frames(*chunks: Dict[str, Any], done: bool = True) -> str:
    text = "".join(f"data: {json.dumps(c)}\n\n" for c in chunks)
    if done:
        text += "data: [DONE]\n\n"
    return text


def delta_chunk(content: str, *, model: Optional[str] = None, usage: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    chunk: Dict[str, Any] = {"choices": [{"index": 0, "delta": {"content": content}}]}
    if model is not None:
        chunk["model"] = model
    if usage is not None:
        chunk["usage"] = usage
    return chunk


def streaming_response(pieces: List[str], status_code: int = 200) -> httpx.Response:
    """Response whose body arrives as the given pieces, one read each."""

    async def _body():
        for piece in pieces:
            yield piece.encode("utf-8")

    return httpx.Response(status_code, headers={"content-type": "text/event-stream"}, content=_body())
