"""Docker Compose teardown commands and the helper command runner."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = py_logging.getLogger(__name__)

COMPOSE_PROGRAM = "compose"


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    async def __call__(self, args: list[str], *, cwd: Path) -> CommandResult: ...


async def run_command(args: list[str], *, cwd: Path) -> CommandResult:
    """Run a bounded helper command to completion and capture its output."""
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    returncode = process.returncode if process.returncode is not None else -1
    return CommandResult(
        args=tuple(args),
        returncode=returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def to_executable(argv: Sequence[str], *, docker_binary: str = "docker") -> list[str]:
    """Prefix bare ``compose`` invocations with the docker CLI."""
    if argv and argv[0] == COMPOSE_PROGRAM:
        return [docker_binary, *argv]
    return list(argv)


class ComposeCommands:
    def __init__(self, compose_file: str) -> None:
        self.compose_file = compose_file

    def _base(self) -> list[str]:
        return [COMPOSE_PROGRAM, "-f", self.compose_file]

    def stop(self, services: Sequence[str] = ()) -> list[str]:
        return [*self._base(), "stop", *services]

    def down(self, *, force: bool = False) -> list[str]:
        cmd = [*self._base(), "down"]
        if force:
            cmd.extend(["--remove-orphans", "--volumes"])
        return cmd

    def remove(self, services: Sequence[str]) -> list[str]:
        return [*self._base(), "rm", "-f", *services]
