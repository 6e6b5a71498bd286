"""Error model and process exit codes for the launchpad CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    RESOLUTION_ERROR = 5
    PROCESS_ERROR = 6
    VALIDATION_ERROR = 7
    INTERRUPTED = 130


@dataclass
class LaunchpadError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class CommandFailedError(LaunchpadError):
    """A bounded command exited with a non-zero return code."""

    returncode: int | None = None
    repository: str = ""
    command: str = ""
    log_file: str = ""

    @classmethod
    def from_exit(cls, repository: str, command: str, returncode: int, log_file: Path) -> CommandFailedError:
        return cls(
            f"'{command}' failed for {repository} with code {returncode}",
            code=ExitCode.PROCESS_ERROR,
            hint=f"Inspect {log_file}",
            returncode=returncode,
            repository=repository,
            command=command,
            log_file=str(log_file),
        )


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
