"""Tool execution gateway: approval gate, deadline and result normalisation.

``ToolGateway.execute`` always returns the content of a tool-role message.
Rejections, timeouts and executor exceptions become ``{"error": ...}`` JSON
so the tool-use loop can hand them back to the model and carry on.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional, Set

from basecamp.application.ports import ApprovalBroker, ToolExecutor
from basecamp.application.run_state import RunStateRecorder
from basecamp.config.constants import (
    DEFAULT_TOOL_TIMEOUT_S,
    MAX_TOOL_RESULT_IN_RUNLOG_CHARS,
    TOOL_CANCEL_GRACE_S,
)
from basecamp.domain import (
    APPROVAL_AUTO_SAFE,
    APPROVAL_MANUAL,
    DECISION_APPROVE,
    ToolCall,
    ToolExecutionError,
    ToolRejectedError,
    ToolTimeoutError,
)
from basecamp.domain.models import (
    RUN_FAILED,
    TOOL_EXECUTING,
    TOOL_KIND_MUTATE,
    TOOL_KIND_READ,
    TOOL_RESULT,
)

logger = logging.getLogger(__name__)

_GENERIC_FAILURE = "Tool execution failed."


def normalize_tool_result(result: Any) -> str:
    """Tool-message content for a successful result.

    A non-blank string passes through unchanged; anything else (including a
    blank string) is JSON-encoded so the message is never empty.
    """
    if isinstance(result, str) and result.strip():
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def _discard_outcome(task: asyncio.Task) -> None:
    """Consume a late executor outcome so asyncio does not report it as unretrieved."""
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Late failure from timed-out tool: %r", task.exception())


def error_result(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


def result_is_error(content: str) -> bool:
    """True when ``content`` is a JSON object with an ``error`` key."""
    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return False
    return isinstance(parsed, dict) and "error" in parsed


class ToolGateway:
    """Wraps a ``ToolExecutor`` for use inside the tool-use loop.

    Under the ``manual`` policy every call waits for a decision from the
    approval broker; under ``auto-safe`` only calls to tools classified as
    mutating wait (tools missing from ``tool_kinds`` count as mutating).

    The deadline covers executor time only.  When it expires the call fails
    with a timeout result, whatever the executor does next: its task is
    cancelled and given ``cancel_grace_s`` to unwind, and anything it returns
    afterwards is discarded.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        *,
        approval_broker: ApprovalBroker,
        approval_policy: str = APPROVAL_MANUAL,
        timeout_s: float = DEFAULT_TOOL_TIMEOUT_S,
        tool_kinds: Optional[Mapping[str, str]] = None,
        recorder: Optional[RunStateRecorder] = None,
        cancel_grace_s: float = TOOL_CANCEL_GRACE_S,
    ) -> None:
        if approval_policy not in (APPROVAL_MANUAL, APPROVAL_AUTO_SAFE):
            raise ValueError(f"Unknown approval policy {approval_policy!r}")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self._executor = executor
        self._broker = approval_broker
        self._policy = approval_policy
        self._timeout_s = timeout_s
        self._tool_kinds: Dict[str, str] = dict(tool_kinds or {})
        self._recorder = recorder or RunStateRecorder(None, "")
        self._cancel_grace_s = max(0.0, cancel_grace_s)
        # Timed-out executor tasks still unwinding; referenced so they are not collected mid-run.
        self._abandoned: Set[asyncio.Task] = set()

    @property
    def approval_policy(self) -> str:
        return self._policy

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def requires_approval(self, tool_name: str) -> bool:
        if self._policy == APPROVAL_MANUAL:
            return True
        return self._tool_kinds.get(tool_name, TOOL_KIND_MUTATE) != TOOL_KIND_READ

    async def execute(self, scope_id: str, tool_call: ToolCall) -> str:
        """Run one tool call and return the tool-message content. Never raises for tool failures."""
        call_id = tool_call.id or ""
        try:
            if self.requires_approval(tool_call.name):
                await self._await_approval(tool_call)
            self._recorder.emit(
                TOOL_EXECUTING,
                tool_name=tool_call.name,
                tool_call_id=call_id,
                args_json=tool_call.arguments,
            )
            result = await self._run_with_deadline(scope_id, tool_call)
        except ToolExecutionError as exc:
            return self._fail(tool_call, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool %r raised %s: %s", tool_call.name, type(exc).__name__, exc)
            return self._fail(tool_call, str(exc) or _GENERIC_FAILURE)

        content = normalize_tool_result(result)
        self._recorder.emit(
            TOOL_RESULT,
            tool_name=tool_call.name,
            tool_call_id=call_id,
            result_json=content[:MAX_TOOL_RESULT_IN_RUNLOG_CHARS],
        )
        return content

    async def _await_approval(self, tool_call: ToolCall) -> None:
        logger.info("Awaiting approval for tool %r (id=%s)", tool_call.name, tool_call.id)
        decision = await self._broker.await_decision(tool_call.id or "")
        if decision != DECISION_APPROVE:
            logger.info("Tool %r (id=%s) rejected: decision=%r", tool_call.name, tool_call.id, decision)
            raise ToolRejectedError()

    async def _run_with_deadline(self, scope_id: str, tool_call: ToolCall) -> Any:
        task = asyncio.ensure_future(self._executor(scope_id, tool_call))
        try:
            done, _ = await asyncio.wait({task}, timeout=self._timeout_s)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()

        task.cancel()
        await asyncio.wait({task}, timeout=self._cancel_grace_s)
        if task.done():
            _discard_outcome(task)
        else:
            logger.warning(
                "Tool %r still running %ss after cancellation; abandoning it", tool_call.name, self._cancel_grace_s
            )
            self._abandoned.add(task)
            task.add_done_callback(self._forget_abandoned)
        logger.warning("Tool %r timed out after %ss; executor cancelled", tool_call.name, self._timeout_s)
        raise ToolTimeoutError(tool_call.name, self._timeout_s)

    def _forget_abandoned(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        _discard_outcome(task)

    def _fail(self, tool_call: ToolCall, message: str) -> str:
        self._recorder.emit(
            RUN_FAILED,
            tool_name=tool_call.name,
            tool_call_id=tool_call.id or "",
            error=message,
        )
        return error_result(message)
