from .run_state_log import FileSystemRunStateLog
from .run_state_reader import RunSummary, list_runs, read_run_events, run_status

__all__ = [
    "FileSystemRunStateLog",
    "RunSummary",
    "list_runs",
    "read_run_events",
    "run_status",
]
