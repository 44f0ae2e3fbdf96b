"""Best-effort writer for the run-state event log.

Every write goes through ``RunStateRecorder.emit``, which records whether the
write itself succeeded and never lets a sink failure reach the caller: the
log exists to observe a turn, and must not be able to fail one.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from basecamp.application.hooks import now_ms
from basecamp.application.ports import RunStateSink
from basecamp.domain import RunEvent, RunState
from basecamp.domain.models import RUN_EVENT_KINDS, RUN_STARTED

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return uuid.uuid4().hex


class RunStateRecorder:
    """Emits run-state events for one run of one camp."""

    def __init__(self, sink: Optional[RunStateSink], scope_id: str) -> None:
        self._sink = sink
        self._scope_id = scope_id
        self._run_id: Optional[str] = None
        self.writes_ok = 0
        self.writes_failed = 0

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    def start(self, state: RunState) -> bool:
        """Bind ``state.run_id`` and emit ``run_started`` with the settings snapshot."""
        self._run_id = state.run_id
        return self.emit(
            RUN_STARTED,
            details={
                "max_iterations": state.max_iterations,
                "tool_timeout_secs": state.tool_timeout_s,
                "approval_policy": state.approval_policy,
            },
        )

    def emit(
        self,
        kind: str,
        *,
        tool_name: Optional[str] = None,
        tool_call_id: Optional[str] = None,
        args_json: Optional[str] = None,
        result_json: Optional[str] = None,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Write one event; return ``True`` when the sink accepted it."""
        if self._sink is None or self._run_id is None:
            return False
        if kind not in RUN_EVENT_KINDS:
            raise ValueError(f"Unknown run event kind {kind!r}")
        event = RunEvent(
            kind=kind,
            run_id=self._run_id,
            timestamp_ms=now_ms(),
            tool_name=tool_name,
            tool_call_id=tool_call_id,
            args_json=args_json,
            result_json=result_json,
            error=error,
            details=details,
        )
        try:
            self._sink.append_event(self._scope_id, event)
        except Exception:  # noqa: BLE001
            self.writes_failed += 1
            logger.warning(
                "Run-state write failed: scope=%s run=%s kind=%s",
                self._scope_id, self._run_id, kind, exc_info=True,
            )
            return False
        self.writes_ok += 1
        return True
