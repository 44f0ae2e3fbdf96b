"""Tool-use loop use case.

Flow: request -> (no tool calls: final text, done) | (tool calls: run each
through the gateway in order, append results, request again) until the model
answers in text or ``max_iterations`` rounds have requested tools.

Every request issued is kept, and the messages appended to the working
transcript are returned as ``new_messages``: persisting them reproduces, on
the next composition, exactly the sequence this turn sent.

Dependencies are injected (ports only); this module never imports concrete
adapters beyond the tracer.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from basecamp.application.compose import assistant_message, assistant_tool_turn, tool_result_message
from basecamp.application.hooks import (
    TelemetryHooks,
    ToolCallEndEvent,
    ToolCallStartEvent,
    call_hook,
    now_ms,
)
from basecamp.application.ports import ChatCompletionClient
from basecamp.application.tool_gateway import ToolGateway, result_is_error
from basecamp.config.constants import DEFAULT_MAX_ITERATIONS, MAX_ITERATIONS_CEILING
from basecamp.domain import (
    ChatMessage,
    ComposedRequest,
    EmptyOutputError,
    LoopExceededError,
    LoopResult,
    TokenUsage,
    ToolCall,
    ToolSpec,
)
from basecamp.infrastructure.telemetry import get_tracer

logger = logging.getLogger(__name__)


def clamp_max_iterations(value: Optional[int]) -> int:
    """Clamp to ``[1, MAX_ITERATIONS_CEILING]``; ``None`` means the default."""
    if value is None:
        return DEFAULT_MAX_ITERATIONS
    return max(1, min(MAX_ITERATIONS_CEILING, int(value)))


def _with_ids(tool_calls: Sequence[ToolCall], iteration: int) -> List[ToolCall]:
    return [
        tc if tc.id else ToolCall(name=tc.name, arguments=tc.arguments, id=f"tool-call-{iteration}-{index}")
        for index, tc in enumerate(tool_calls)
    ]


async def run_tool_use_loop(
    scope_id: str,
    messages: Sequence[ChatMessage],
    tools: Optional[Sequence[ToolSpec]],
    *,
    chat_client: ChatCompletionClient,
    gateway: ToolGateway,
    on_token: Callable[[str], None],
    model: str,
    temperature: float,
    max_tokens: int,
    max_iterations: Optional[int] = DEFAULT_MAX_ITERATIONS,
    correlation_id: Optional[str] = None,
    hooks: Optional[TelemetryHooks] = None,
) -> LoopResult:
    """Drive the model until it answers in text.

    ``on_token`` is called once with the final text.  Tool calls of one round
    run sequentially, in the order the model returned them.

    Raises:
        EmptyOutputError: the final answer is blank.
        LoopExceededError: every one of ``max_iterations`` rounds requested tools.
        OpenRouterRequestError: a request failed (HTTP status, schema, transport).
    """
    limit = clamp_max_iterations(max_iterations)
    hooks = hooks or TelemetryHooks()
    tracer = get_tracer()
    tool_list = list(tools) if tools else None

    working: List[ChatMessage] = list(messages)
    new_messages: List[ChatMessage] = []
    requests: List[ComposedRequest] = []
    usage = TokenUsage()
    resolved_model: Optional[str] = None

    for iteration in range(limit):
        request = ComposedRequest(
            model=model,
            messages=list(working),
            temperature=temperature,
            max_tokens=max_tokens,
            tools=tool_list,
            tool_choice="auto" if tool_list else None,
            stream=False,
        )
        requests.append(request)
        logger.debug("Loop %s iteration %d: %d messages", scope_id, iteration, len(working))

        with tracer.start_as_current_span("basecamp.llm_call") as llm_span:
            llm_span.set_attribute("iteration", iteration)
            llm_span.set_attribute("model", model)
            llm_span.set_attribute("message_count", len(working))
            completion = await chat_client.complete(request, correlation_id=correlation_id, hooks=hooks)
            llm_span.set_attribute("tool_calls_returned", len(completion.tool_calls))

        usage = usage.plus(completion.usage)
        if completion.model:
            resolved_model = completion.model

        if not completion.has_tool_calls:
            text = completion.text.strip()
            if not text:
                raise EmptyOutputError()
            final = assistant_message(text)
            working.append(final)
            new_messages.append(final)
            on_token(text)
            logger.info("Loop %s completed after %d request(s)", scope_id, len(requests))
            return LoopResult(
                output_text=text,
                requests=requests,
                new_messages=new_messages,
                usage=usage,
                model=resolved_model,
                raw_response=completion.raw,
            )

        calls = _with_ids(completion.tool_calls, iteration)
        turn = assistant_tool_turn(completion.text, calls)
        working.append(turn)
        new_messages.append(turn)

        for tc in calls:
            content = await _run_tool_call(scope_id, tc, gateway, tracer, hooks, correlation_id)
            result_msg = tool_result_message(tc.id or "", tc.name, content)
            working.append(result_msg)
            new_messages.append(result_msg)

    logger.warning("Loop %s: max_iterations (%d) reached with tools still requested", scope_id, limit)
    raise LoopExceededError(limit)


async def _run_tool_call(
    scope_id: str,
    tc: ToolCall,
    gateway: ToolGateway,
    tracer,
    hooks: TelemetryHooks,
    correlation_id: Optional[str],
) -> str:
    call_hook(
        hooks.on_tool_call_start,
        ToolCallStartEvent(
            correlation_id=correlation_id,
            timestamp_ms=now_ms(),
            tool_name=tc.name,
            tool_call_id=tc.id or "",
            arguments=tc.arguments,
        ),
    )
    started = time.monotonic()
    with tracer.start_as_current_span("basecamp.tool_call") as tool_span:
        tool_span.set_attribute("tool_name", tc.name)
        tool_span.set_attribute("tool_call_id", tc.id or "")
        content = await gateway.execute(scope_id, tc)
        success = not result_is_error(content)
        tool_span.set_attribute("success", success)
    call_hook(
        hooks.on_tool_call_end,
        ToolCallEndEvent(
            correlation_id=correlation_id,
            timestamp_ms=now_ms(),
            duration_ms=int((time.monotonic() - started) * 1000),
            tool_name=tc.name,
            tool_call_id=tc.id or "",
            result=content,
            success=success,
        ),
    )
    return content
