"""Response parsing shared by the non-streaming and streaming OpenRouter paths.

The response envelope is validated with pydantic; message content and tool
calls are then normalised leniently: unusable tool-call entries are dropped
rather than failing the whole response.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from basecamp.domain import ChatCompletion, ResponseValidationError, TokenUsage, ToolCall

VALIDATION_FAILED_MESSAGE = "OpenRouter response validation failed."


class _Message(BaseModel):
    model_config = ConfigDict(extra="allow")
    role: Optional[str] = None
    content: Union[str, List[Any], None] = None
    tool_calls: Optional[List[Any]] = None


class _Choice(BaseModel):
    model_config = ConfigDict(extra="allow")
    message: _Message


class _Usage(BaseModel):
    model_config = ConfigDict(extra="allow")
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class _Completion(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[_Choice] = Field(..., min_length=1)
    usage: Optional[_Usage] = None


def normalize_content(content: Any) -> str:
    """Flatten message content to text.

    Strings pass through; a list of parts keeps string parts and the ``text``
    of object parts, joined by newlines; anything else is empty.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    texts: List[str] = []
    for part in content:
        if isinstance(part, str):
            text = part
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            text = part["text"]
        else:
            text = ""
        if text:
            texts.append(text)
    return "\n".join(texts)


def _normalize_arguments(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps({} if value is None else value, ensure_ascii=False)
    except (TypeError, ValueError):
        return "{}"


def parse_tool_calls(raw: Any) -> List[ToolCall]:
    """Keep well-formed function calls; skip entries without a usable name."""
    if not isinstance(raw, list):
        return []
    calls: List[ToolCall] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        kind = entry.get("type")
        fn = entry.get("function")
        if (kind is not None and kind != "function") or not isinstance(fn, dict):
            continue
        name = fn.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        call_id = entry.get("id") if isinstance(entry.get("id"), str) else None
        calls.append(ToolCall(name=name, arguments=_normalize_arguments(fn.get("arguments")), id=call_id))
    return calls


def parse_completion(
    data: Any,
    *,
    request_payload: Optional[Dict[str, Any]] = None,
) -> ChatCompletion:
    """Validate a non-streaming response body.

    Raises:
        ResponseValidationError: the body does not match the chat-completion schema.
    """
    try:
        parsed = _Completion.model_validate(data)
    except ValidationError as exc:
        raise ResponseValidationError(
            VALIDATION_FAILED_MESSAGE,
            request_payload=request_payload,
            response_payload=data,
        ) from exc

    message = parsed.choices[0].message
    usage = parsed.usage or _Usage()
    return ChatCompletion(
        text=normalize_content(message.content).strip(),
        tool_calls=parse_tool_calls(message.tool_calls),
        usage=TokenUsage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        ),
        model=parsed.model or None,
        raw=data,
    )
