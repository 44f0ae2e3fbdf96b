"""Telemetry hooks for requests, stream chunks and tool calls.

Hooks are plain callables receiving a frozen event.  They are observational:
``call_hook`` swallows anything a hook raises so a broken listener can never
change the outcome of a turn.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from basecamp.domain import TokenUsage

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RequestStartEvent:
    correlation_id: Optional[str]
    timestamp_ms: int
    model: str
    stream: bool
    message_count: int
    tool_count: int
    request_payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestEndEvent:
    correlation_id: Optional[str]
    timestamp_ms: int
    duration_ms: int
    status: int
    headers: Dict[str, str]
    model: Optional[str]
    usage: TokenUsage
    response_payload: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class RequestErrorEvent:
    correlation_id: Optional[str]
    timestamp_ms: int
    duration_ms: int
    error: str
    status: Optional[int] = None


@dataclass(frozen=True)
class StreamChunkEvent:
    correlation_id: Optional[str]
    timestamp_ms: int
    chunk_count: int


@dataclass(frozen=True)
class ToolCallStartEvent:
    correlation_id: Optional[str]
    timestamp_ms: int
    tool_name: str
    tool_call_id: str
    arguments: str


@dataclass(frozen=True)
class ToolCallEndEvent:
    correlation_id: Optional[str]
    timestamp_ms: int
    duration_ms: int
    tool_name: str
    tool_call_id: str
    result: str
    success: bool


@dataclass
class TelemetryHooks:
    """Optional listeners; unset hooks are skipped."""
    on_request_start: Optional[Callable[[RequestStartEvent], None]] = None
    on_request_end: Optional[Callable[[RequestEndEvent], None]] = None
    on_request_error: Optional[Callable[[RequestErrorEvent], None]] = None
    on_stream_chunk: Optional[Callable[[StreamChunkEvent], None]] = None
    on_tool_call_start: Optional[Callable[[ToolCallStartEvent], None]] = None
    on_tool_call_end: Optional[Callable[[ToolCallEndEvent], None]] = None


def call_hook(hook: Optional[Callable[[Any], None]], event: Any) -> None:
    """Invoke ``hook(event)``; exceptions are logged at debug level and dropped."""
    if hook is None:
        return
    try:
        hook(event)
    except Exception:  # noqa: BLE001
        logger.debug("Telemetry hook %r failed for %s", hook, type(event).__name__, exc_info=True)
