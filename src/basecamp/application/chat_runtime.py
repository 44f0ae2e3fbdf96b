"""One camp turn end to end.

Flow: compose -> (tools active: run-state lifecycle around the tool-use loop)
| (no tools: a single streaming request) -> ``TurnResult``.  The result's
``new_messages`` are what the host appends to the transcript, via
``persist_turn`` or its own storage code.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, List, Optional, Sequence

from basecamp.application.compose import assistant_message, compose_camp_request
from basecamp.application.hooks import TelemetryHooks
from basecamp.application.ports import (
    ApprovalBroker,
    CampStore,
    ChatCompletionClient,
    RunStateSink,
    ToolExecutor,
)
from basecamp.application.run_state import RunStateRecorder, new_run_id
from basecamp.application.tool_gateway import ToolGateway
from basecamp.application.tool_loop import clamp_max_iterations, run_tool_use_loop
from basecamp.config.constants import DEFAULT_MAX_ITERATIONS, DEFAULT_TOOL_TIMEOUT_S
from basecamp.domain import (
    APPROVAL_MANUAL,
    Camp,
    CampArtifact,
    ChatMessage,
    ComposeError,
    ComposedBreakdown,
    ComposedRequest,
    EmptyOutputError,
    HTTPError,
    RunState,
    ToolSpec,
    TurnResult,
)
from basecamp.domain.models import RUN_COMPLETED, RUN_FAILED
from basecamp.infrastructure.telemetry import get_tracer

logger = logging.getLogger(__name__)


async def run_camp_turn(
    camp: Camp,
    *,
    chat_client: ChatCompletionClient,
    on_token: Callable[[str], None],
    temperature: float,
    max_tokens: int,
    user_message: str = "",
    selected_artifacts: Optional[Sequence[CampArtifact]] = None,
    tools: Optional[Sequence[ToolSpec]] = None,
    tool_executor: Optional[ToolExecutor] = None,
    approval_broker: Optional[ApprovalBroker] = None,
    run_state_sink: Optional[RunStateSink] = None,
    max_iterations: Optional[int] = DEFAULT_MAX_ITERATIONS,
    approval_policy: str = APPROVAL_MANUAL,
    tool_timeout_s: float = DEFAULT_TOOL_TIMEOUT_S,
    model: Optional[str] = None,
    correlation_id: Optional[str] = None,
    hooks: Optional[TelemetryHooks] = None,
    on_compose_start: Optional[Callable[[], None]] = None,
    on_compose_end: Optional[Callable[[ComposedRequest, ComposedBreakdown], None]] = None,
) -> TurnResult:
    """Run one turn for ``camp``.

    Tools are offered only when ``camp.config.tools_enabled`` is set and
    ``tools`` is non-empty; a tool turn then needs both an executor and an
    approval broker.  Without tools the reply is streamed and ``on_token``
    fires for every delta; with tools it fires once with the final text.

    Raises:
        ComposeError: invalid request parameters, or tools without an executor/broker.
        EmptyOutputError: the model produced no text.
        LoopExceededError: the tool-use loop hit its iteration ceiling.
        OpenRouterRequestError: the API request failed.
    """
    correlation_id = correlation_id or uuid.uuid4().hex
    active_tools: List[ToolSpec] = list(tools or []) if camp.config.tools_enabled else []
    using_tools = bool(active_tools)

    if on_compose_start is not None:
        on_compose_start()
    request, breakdown = compose_camp_request(
        camp,
        temperature=temperature,
        max_tokens=max_tokens,
        user_message=user_message,
        selected_artifacts=selected_artifacts,
        tools=active_tools,
        model=model,
    )
    if on_compose_end is not None:
        on_compose_end(request, breakdown)

    if using_tools and tool_executor is None:
        raise ComposeError("Tool executor is not configured.")
    if using_tools and approval_broker is None:
        raise ComposeError("Approval broker is not configured.")

    prefix: List[ChatMessage] = []
    if breakdown.user_message:
        prefix.append(ChatMessage(role="user", content=breakdown.user_message))

    logger.info(
        "Turn start: camp=%s model=%s tools=%d messages=%d correlation=%s",
        camp.config.id, request.model, len(active_tools), len(request.messages), correlation_id,
    )
    tracer = get_tracer()
    with tracer.start_as_current_span("basecamp.turn") as span:
        span.set_attribute("camp_id", camp.config.id)
        span.set_attribute("model", request.model)
        span.set_attribute("using_tools", using_tools)
        if using_tools:
            result = await _run_tool_turn(
                camp,
                request,
                breakdown,
                prefix,
                chat_client=chat_client,
                on_token=on_token,
                tool_executor=tool_executor,
                approval_broker=approval_broker,
                run_state_sink=run_state_sink,
                max_iterations=max_iterations,
                approval_policy=approval_policy,
                tool_timeout_s=tool_timeout_s,
                correlation_id=correlation_id,
                hooks=hooks,
            )
        else:
            result = await _run_streaming_turn(
                request,
                breakdown,
                prefix,
                chat_client=chat_client,
                on_token=on_token,
                correlation_id=correlation_id,
                hooks=hooks,
            )
    logger.info("Turn end: camp=%s requests=%d chars=%d", camp.config.id, len(result.requests), len(result.output_text))
    return result


async def _run_streaming_turn(
    request: ComposedRequest,
    breakdown: ComposedBreakdown,
    prefix: List[ChatMessage],
    *,
    chat_client: ChatCompletionClient,
    on_token: Callable[[str], None],
    correlation_id: str,
    hooks: Optional[TelemetryHooks],
) -> TurnResult:
    streaming_request = request.with_stream(True)
    streamed = await chat_client.stream(streaming_request, on_token, correlation_id=correlation_id, hooks=hooks)
    text = streamed.output_text.strip()
    if not text:
        raise EmptyOutputError()
    return TurnResult(
        output_text=text,
        request=streaming_request,
        requests=[streaming_request],
        new_messages=prefix + [assistant_message(text)],
        using_tools=False,
        breakdown=breakdown,
        correlation_id=correlation_id,
        usage=streamed.usage,
        model=streamed.model,
    )


async def _run_tool_turn(
    camp: Camp,
    request: ComposedRequest,
    breakdown: ComposedBreakdown,
    prefix: List[ChatMessage],
    *,
    chat_client: ChatCompletionClient,
    on_token: Callable[[str], None],
    tool_executor: ToolExecutor,
    approval_broker: ApprovalBroker,
    run_state_sink: Optional[RunStateSink],
    max_iterations: Optional[int],
    approval_policy: str,
    tool_timeout_s: float,
    correlation_id: str,
    hooks: Optional[TelemetryHooks],
) -> TurnResult:
    scope_id = camp.config.id
    state = RunState(
        run_id=new_run_id(),
        max_iterations=clamp_max_iterations(max_iterations),
        approval_policy=approval_policy,
        tool_timeout_s=tool_timeout_s,
    )
    recorder = RunStateRecorder(run_state_sink, scope_id)
    recorder.start(state)

    gateway = ToolGateway(
        tool_executor,
        approval_broker=approval_broker,
        approval_policy=state.approval_policy,
        timeout_s=state.tool_timeout_s,
        tool_kinds={t.name: t.kind for t in request.tools or []},
        recorder=recorder,
    )
    try:
        loop = await run_tool_use_loop(
            scope_id,
            request.messages,
            request.tools,
            chat_client=chat_client,
            gateway=gateway,
            on_token=on_token,
            model=request.model,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            max_iterations=state.max_iterations,
            correlation_id=correlation_id,
            hooks=hooks,
        )
    except Exception as exc:
        recorder.emit(RUN_FAILED, error=str(exc) or type(exc).__name__)
        raise
    recorder.emit(RUN_COMPLETED, details={"requests": len(loop.requests)})

    return TurnResult(
        output_text=loop.output_text,
        request=loop.requests[-1],
        requests=loop.requests,
        new_messages=prefix + loop.new_messages,
        using_tools=True,
        breakdown=breakdown,
        correlation_id=correlation_id,
        usage=loop.usage,
        model=loop.model,
        run_id=state.run_id,
    )


def persist_turn(store: CampStore, camp_id: str, result: TurnResult) -> None:
    """Append a turn's new messages and bump usage of the artifacts it included.

    The user message carries the ids of the artifacts composed into the turn.
    """
    included = result.breakdown.included_artifact_ids
    for message in result.new_messages:
        if message.role == "user":
            store.append_message(camp_id, message, included_artifact_ids=included)
        else:
            store.append_message(camp_id, message)
    if included:
        store.increment_artifact_usage(camp_id, included)


def describe_turn_failure(exc: BaseException, requested_model: Optional[str] = None) -> str:
    """User-visible message for a failed turn."""
    message = str(exc) or type(exc).__name__
    if isinstance(exc, HTTPError) and requested_model:
        return f"{message} (model: {requested_model})"
    return message
