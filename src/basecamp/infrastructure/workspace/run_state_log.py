"""Append-only run-state log (events to runlog.jsonl). Implements the RunStateSink port."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from basecamp.domain import RunEvent

RUNLOG_FILENAME = "runlog.jsonl"

_write_lock = threading.Lock()


def _path_component(value: str, what: str) -> str:
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise ValueError(f"Invalid {what} for run-state log path: {value!r}")
    return value


def run_dir_for(root: str | Path, scope_id: str, run_id: str) -> Path:
    """``<root>/camps/<scope_id>/runs/<run_id>``."""
    return (
        Path(root)
        / "camps"
        / _path_component(scope_id, "scope id")
        / "runs"
        / _path_component(run_id, "run id")
    )


def append_event(run_dir: str | Path, event: RunEvent) -> None:
    """Append one event record to runlog.jsonl in the given run directory."""
    run_path = Path(run_dir)
    run_path.mkdir(parents=True, exist_ok=True)
    line = json.dumps(event.to_dict(), ensure_ascii=False) + "\n"
    with _write_lock:
        with (run_path / RUNLOG_FILENAME).open("a", encoding="utf-8") as f:
            f.write(line)


class FileSystemRunStateLog:
    """Writes each run's events under ``<root>/camps/<scope_id>/runs/<run_id>/``."""

    def __init__(self, root: str | Path = ".basecamp") -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def append_event(self, scope_id: str, event: RunEvent) -> None:
        append_event(run_dir_for(self._root.resolve(), scope_id, event.run_id), event)
