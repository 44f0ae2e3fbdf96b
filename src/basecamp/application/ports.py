"""Ports (abstract interfaces) used by the application layer.

Each port is a ``Protocol`` so the application depends only on the *shape* of
the collaborator.  Infrastructure adapters satisfy these shapes; the
application never imports a concrete adapter.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Protocol

from basecamp.domain import (
    Camp,
    CampConfig,
    ChatCompletion,
    ChatMessage,
    ComposedRequest,
    RunEvent,
    StreamResult,
    ToolCall,
)
from basecamp.application.hooks import TelemetryHooks


class ChatCompletionClient(Protocol):
    """OpenRouter-compatible chat-completion API.

    ``complete`` issues a non-streaming request and returns the validated
    response.  ``stream`` issues a streaming request, calls ``on_token`` for
    every text delta as it is decoded, and returns the aggregate.
    """

    async def complete(
        self,
        request: ComposedRequest,
        *,
        correlation_id: Optional[str] = None,
        hooks: Optional[TelemetryHooks] = None,
    ) -> ChatCompletion: ...

    async def stream(
        self,
        request: ComposedRequest,
        on_token: Callable[[str], None],
        *,
        correlation_id: Optional[str] = None,
        hooks: Optional[TelemetryHooks] = None,
    ) -> StreamResult: ...


class ToolExecutor(Protocol):
    """Runs one tool call for a camp.

    Returns the tool result; strings are passed to the model as-is, anything
    else is JSON-encoded.  Raising is allowed: the gateway turns exceptions
    into ``{"error": ...}`` results.  Must tolerate cancellation when its
    deadline expires.
    """

    async def __call__(self, scope_id: str, tool_call: ToolCall) -> Any: ...


class ApprovalBroker(Protocol):
    """Per-tool-call approval decisions (``"approve"`` or ``"reject"``).

    ``await_decision`` suspends until ``submit_decision`` is called for the
    same id; a decision submitted before anyone waits is kept until read.
    """

    def submit_decision(self, tool_call_id: str, decision: str) -> None: ...

    async def await_decision(self, tool_call_id: str) -> str: ...


class RunStateSink(Protocol):
    """Append-only destination for run-state events."""

    def append_event(self, scope_id: str, event: RunEvent) -> None: ...


class CampStore(Protocol):
    """Camp persistence owned by the host application."""

    def load_camp(self, camp_id: str) -> Camp: ...

    def append_message(
        self,
        camp_id: str,
        message: ChatMessage,
        included_artifact_ids: Optional[List[str]] = None,
    ) -> None: ...

    def update_config(self, camp_id: str, config: CampConfig) -> None: ...

    def increment_artifact_usage(self, camp_id: str, artifact_ids: Iterable[str]) -> None: ...
