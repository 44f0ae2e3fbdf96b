"""Domain models: chat messages, tool calls, camp state, composed requests, run events. Pure data, no I/O."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

# A message body is plain text or a list of structured content parts
# (``{"type": "text", "text": ...}``); ``None`` is allowed for assistant
# turns that only carry tool calls.
MessageContent = Union[str, List[Dict[str, Any]], None]

ROLES = ("system", "user", "assistant", "tool")

APPROVAL_MANUAL = "manual"
APPROVAL_AUTO_SAFE = "auto-safe"
APPROVAL_POLICIES = (APPROVAL_MANUAL, APPROVAL_AUTO_SAFE)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"

TOOL_KIND_READ = "read"
TOOL_KIND_MUTATE = "mutate"

RUN_STARTED = "run_started"
TOOL_EXECUTING = "tool_executing"
TOOL_RESULT = "tool_result"
RUN_FAILED = "run_failed"
RUN_COMPLETED = "run_completed"
RUN_EVENT_KINDS = (RUN_STARTED, TOOL_EXECUTING, TOOL_RESULT, RUN_FAILED, RUN_COMPLETED)


# ---------------------------------------------------------------------------
# Wire-level chat types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is the raw JSON text the model produced; it is forwarded to
    the executor unparsed.
    """
    name: str
    arguments: str = "{}"
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["type"] = "function"
        data["function"] = {"name": self.name, "arguments": self.arguments}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        fn = data.get("function") or {}
        arguments = fn.get("arguments", "{}")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return cls(name=fn.get("name") or "", arguments=arguments, id=data.get("id"))


@dataclass(frozen=True)
class ChatMessage:
    """One message of the outbound conversation.

    ``to_dict`` emits keys in a fixed order and omits absent optional fields,
    so two equal messages always serialise to the same bytes.
    """
    role: str
    content: MessageContent = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            data["name"] = self.name
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        return data


@dataclass(frozen=True)
class ToolSpec:
    """A tool offered to the model.

    ``kind`` classifies the tool for the auto-safe approval policy and never
    goes on the wire.
    """
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    kind: str = TOOL_KIND_MUTATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolSpec":
        fn = data.get("function") or data
        return cls(
            name=fn["name"],
            description=fn.get("description") or "",
            parameters=fn.get("parameters") or {"type": "object", "properties": {}},
            kind=data.get("kind") or TOOL_KIND_MUTATE,
        )


@dataclass(frozen=True)
class TokenUsage:
    """Token counters reported by the API; any of them may be missing."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    def plus(self, other: "TokenUsage") -> "TokenUsage":
        """Sum two usages counter by counter; a counter missing on both sides stays ``None``."""
        def _add(a: Optional[int], b: Optional[int]) -> Optional[int]:
            if a is None:
                return b
            if b is None:
                return a
            return a + b

        return TokenUsage(
            prompt_tokens=_add(self.prompt_tokens, other.prompt_tokens),
            completion_tokens=_add(self.completion_tokens, other.completion_tokens),
            total_tokens=_add(self.total_tokens, other.total_tokens),
        )

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


# ---------------------------------------------------------------------------
# Camp state (read through the storage port)
# ---------------------------------------------------------------------------

@dataclass
class CampConfig:
    id: str
    name: str
    model: str
    tools_enabled: bool = False


@dataclass
class CampMessage:
    """A persisted transcript entry."""
    id: str
    role: str
    content: str
    created_at: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    included_artifact_ids: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CampMessage":
        raw_calls = data.get("tool_calls")
        return cls(
            id=str(data.get("id") or ""),
            role=data["role"],
            content=data.get("content") or "",
            created_at=data.get("created_at") or "",
            name=data.get("name"),
            tool_call_id=data.get("tool_call_id"),
            tool_calls=[ToolCall.from_dict(tc) for tc in raw_calls] if raw_calls else None,
            included_artifact_ids=data.get("included_artifact_ids"),
        )


@dataclass
class CampArtifact:
    id: str
    title: str
    body: str
    usage_count: int = 0
    archived: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CampArtifact":
        meta = data.get("metadata") or data
        return cls(
            id=str(meta["id"]),
            title=meta.get("title") or "",
            body=data.get("body") or "",
            usage_count=int(meta.get("usage_count") or 0),
            archived=bool(meta.get("archived", False)),
        )


@dataclass
class Camp:
    """Everything the composer reads for one turn."""
    config: CampConfig
    system_prompt: str = ""
    memory: Optional[Dict[str, Any]] = field(default_factory=dict)
    transcript: List[CampMessage] = field(default_factory=list)
    artifacts: List[CampArtifact] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Camp":
        """Build a camp from a plain JSON snapshot (CLI input, fixtures)."""
        cfg = data.get("config") or {}
        return cls(
            config=CampConfig(
                id=str(cfg.get("id") or data.get("id") or ""),
                name=cfg.get("name") or "",
                model=cfg.get("model") or "",
                tools_enabled=bool(cfg.get("tools_enabled", False)),
            ),
            system_prompt=data.get("system_prompt") or "",
            memory=data.get("memory", {}),
            transcript=[CampMessage.from_dict(m) for m in data.get("transcript") or []],
            artifacts=[CampArtifact.from_dict(a) for a in data.get("artifacts") or []],
        )


# ---------------------------------------------------------------------------
# Composer output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComposedRequest:
    """A complete chat-completion request.

    ``tools`` and ``tool_choice`` are ``None`` when no tools are offered and
    are then left out of the payload entirely.
    """
    model: str
    messages: List[ChatMessage]
    temperature: float
    max_tokens: int
    tools: Optional[List[ToolSpec]] = None
    tool_choice: Optional[str] = None
    stream: Optional[bool] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.tools is not None:
            payload["tools"] = [t.to_dict() for t in self.tools]
        if self.tool_choice is not None:
            payload["tool_choice"] = self.tool_choice
        if self.stream is not None:
            payload["stream"] = self.stream
        return payload

    def with_messages(self, messages: List[ChatMessage]) -> "ComposedRequest":
        return replace(self, messages=list(messages))

    def with_stream(self, stream: Optional[bool]) -> "ComposedRequest":
        return replace(self, stream=stream)


@dataclass(frozen=True)
class ArtifactInclusion:
    id: str
    title: str
    original_chars: int
    included_chars: int
    truncated: bool


@dataclass(frozen=True)
class ComposedBreakdown:
    """What went into a composed request, for audit and display only."""
    system_prompt: str
    memory_json: str
    artifacts: List[ArtifactInclusion]
    omitted_artifact_ids: List[str]
    transcript_total: int
    transcript_included: int
    user_message: str

    @property
    def included_artifact_ids(self) -> List[str]:
        return [a.id for a in self.artifacts]


# ---------------------------------------------------------------------------
# API results
# ---------------------------------------------------------------------------

@dataclass
class ChatCompletion:
    """A validated non-streaming response."""
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class StreamResult:
    """Aggregate of a decoded SSE stream."""
    output_text: str
    model: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    chunks_processed: int = 0


# ---------------------------------------------------------------------------
# Tool loop and run state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunState:
    run_id: str
    max_iterations: int = 10
    approval_policy: str = APPROVAL_MANUAL
    tool_timeout_s: float = 30.0


@dataclass(frozen=True)
class RunEvent:
    """One record of the run-state log. Immutable once built."""
    kind: str
    run_id: str
    timestamp_ms: int
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    args_json: Optional[str] = None
    result_json: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "run_id": self.run_id,
            "timestamp_ms": self.timestamp_ms,
        }
        for key in ("tool_name", "tool_call_id", "args_json", "result_json", "error", "details"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class LoopResult:
    """Outcome of a completed tool-use loop."""
    output_text: str
    requests: List[ComposedRequest]
    new_messages: List[ChatMessage]
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


@dataclass
class TurnResult:
    """Outcome of one camp turn, ready to be persisted."""
    output_text: str
    request: ComposedRequest
    requests: List[ComposedRequest]
    new_messages: List[ChatMessage]
    using_tools: bool
    breakdown: ComposedBreakdown
    correlation_id: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None
    run_id: Optional[str] = None
