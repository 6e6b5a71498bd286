"""Process supervision domain package."""

from .models import ProcessExit, ProcessState, ProcessStatus, RunningProcess, format_uptime
from .supervisor import BatchOutcome, BatchResult, ProcessSupervisor

__all__ = [
    "BatchOutcome",
    "BatchResult",
    "format_uptime",
    "ProcessExit",
    "ProcessState",
    "ProcessStatus",
    "ProcessSupervisor",
    "RunningProcess",
]
