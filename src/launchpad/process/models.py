"""Process supervisor domain models."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from launchpad.docker.detector import DockerClassification
from launchpad.workspace.repositories import Repository


class ProcessState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    STOPPED = "stopped"
    KILLED = "killed"


TERMINAL_STATES = frozenset({ProcessState.EXITED, ProcessState.STOPPED, ProcessState.KILLED})

ProcessKey = tuple[str, str]


@dataclass
class RunningProcess:
    repository: Repository
    command: str
    argv: tuple[str, ...]
    process: asyncio.subprocess.Process
    pid: int
    started_at: datetime
    started_monotonic: float
    log_file: Path
    classification: DockerClassification
    long_running: bool = False
    state: ProcessState = ProcessState.STARTING
    returncode: int | None = None
    watcher: asyncio.Task[int] | None = field(default=None, repr=False, compare=False)

    @property
    def key(self) -> ProcessKey:
        return (self.repository.name, self.command)

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


@dataclass(frozen=True)
class ProcessStatus:
    repository: str
    command: str
    pid: int
    uptime_seconds: float
    state: ProcessState
    docker: str
    log_file: Path
    services: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProcessExit:
    repository: str
    command: str
    pid: int
    state: ProcessState
    returncode: int | None
    log_file: Path
    ended_at: datetime = field(default_factory=datetime.now)

    @property
    def failed(self) -> bool:
        return self.state == ProcessState.EXITED and self.returncode not in (0, None)


def format_uptime(seconds: float) -> str:
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
