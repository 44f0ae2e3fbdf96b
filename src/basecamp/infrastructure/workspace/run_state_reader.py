"""Read and summarise run-state logs.

Read-only counterpart of ``FileSystemRunStateLog``, used by the ``basecamp
runs`` CLI commands.  A run without a terminal event is reported as
``in_progress``: it is either still running or was interrupted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from basecamp.domain.models import RUN_COMPLETED, RUN_FAILED, RUN_STARTED, TOOL_EXECUTING

from .run_state_log import RUNLOG_FILENAME, run_dir_for

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_IN_PROGRESS = "in_progress"


@dataclass
class RunSummary:
    """Lightweight summary of a single run, built from its runlog."""
    run_id: str
    scope_id: str
    status: str
    started_ms: Optional[int]
    event_count: int
    tool_calls: int
    last_error: Optional[str]


def _parse_runlog(runlog_path: Path) -> list[dict]:
    """Parse a runlog.jsonl file into a list of event dicts (skips bad lines)."""
    events: list[dict] = []
    try:
        lines = runlog_path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return events
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(record, dict):
            events.append(record)
    return events


def run_status(events: list[dict]) -> str:
    """``completed``, ``failed`` (a run-level failure) or ``in_progress``.

    A ``run_failed`` that names a tool is a tool-level failure the loop
    recovered from, so it does not end the run.
    """
    for ev in reversed(events):
        kind = ev.get("kind")
        if kind == RUN_COMPLETED:
            return STATUS_COMPLETED
        if kind == RUN_FAILED and not ev.get("tool_name"):
            return STATUS_FAILED
    return STATUS_IN_PROGRESS


def _summarise_run(scope_id: str, run_dir: Path) -> RunSummary:
    events = _parse_runlog(run_dir / RUNLOG_FILENAME)
    started: Optional[int] = None
    last_error: Optional[str] = None
    tool_calls = 0
    for ev in events:
        kind = ev.get("kind")
        if kind == RUN_STARTED and started is None:
            started = ev.get("timestamp_ms")
        elif kind == TOOL_EXECUTING:
            tool_calls += 1
        elif kind == RUN_FAILED:
            last_error = ev.get("error")
    if started is None and events:
        started = events[0].get("timestamp_ms")
    return RunSummary(
        run_id=run_dir.name,
        scope_id=scope_id,
        status=run_status(events),
        started_ms=started,
        event_count=len(events),
        tool_calls=tool_calls,
        last_error=last_error,
    )


def list_runs(root: str | Path, scope_id: Optional[str] = None, limit: int = 20) -> List[RunSummary]:
    """List recent runs, most recent first, optionally for one scope only."""
    camps_dir = Path(root) / "camps"
    if not camps_dir.is_dir():
        return []

    if scope_id is not None:
        scope_dirs = [camps_dir / scope_id]
    else:
        scope_dirs = sorted(p for p in camps_dir.iterdir() if p.is_dir())

    summaries: List[RunSummary] = []
    for scope_dir in scope_dirs:
        runs_dir = scope_dir / "runs"
        if not runs_dir.is_dir():
            continue
        for run_dir in runs_dir.iterdir():
            if run_dir.is_dir() and (run_dir / RUNLOG_FILENAME).is_file():
                summaries.append(_summarise_run(scope_dir.name, run_dir))

    summaries.sort(key=lambda s: s.started_ms if s.started_ms is not None else 0, reverse=True)
    return summaries[:limit]


def read_run_events(root: str | Path, scope_id: str, run_id: str) -> List[dict]:
    """Return all events of one run.

    Raises:
        FileNotFoundError: When the run has no runlog.
    """
    runlog = run_dir_for(root, scope_id, run_id) / RUNLOG_FILENAME
    if not runlog.is_file():
        raise FileNotFoundError(
            f"Run '{run_id}' of camp '{scope_id}' not found under '{root}'. "
            "Use 'basecamp runs list' to see available runs."
        )
    return _parse_runlog(runlog)
