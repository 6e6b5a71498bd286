"""Logical commands and run options."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict

SHELL_PREFIX = "sh:"


class LogicalCommand(str, Enum):
    DEV = "dev"
    START = "start"
    SERVE = "serve"
    WATCH = "watch"
    BUILD = "build"
    TEST = "test"
    LINT = "lint"
    INSTALL = "install"
    CLEAN = "clean"
    TYPECHECK = "typecheck"
    STOP = "stop"
    DOWN = "down"
    LOGS = "logs"


LONG_RUNNING_COMMANDS = frozenset(
    {LogicalCommand.DEV, LogicalCommand.START, LogicalCommand.SERVE, LogicalCommand.WATCH}
)


@dataclass(frozen=True)
class Passthrough:
    """A command name outside the recognised set, forwarded as a script name."""

    name: str


@dataclass(frozen=True)
class ShellCommand:
    script: str


ParsedCommand = LogicalCommand | Passthrough | ShellCommand


def parse_command(text: str) -> ParsedCommand:
    if text.startswith(SHELL_PREFIX):
        return ShellCommand(script=text[len(SHELL_PREFIX) :].strip())
    try:
        return LogicalCommand(text)
    except ValueError:
        return Passthrough(name=text)


def is_long_running(command: str) -> bool:
    return parse_command(command) in LONG_RUNNING_COMMANDS


class RunOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    parallel: bool = False
    watch: bool = False
    fix: bool = False
    volumes: bool = False
    force: bool = False
