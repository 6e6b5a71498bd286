"""Per-repository command overrides read from the configuration store.

Raw config values come in three shapes and are parsed once, here, into a
tagged variant:

* ``"pnpm vitest run"`` -> :class:`SingleCommand`
* ``["pnpm", "vitest", "run"]`` -> :class:`CommandList`
* ``[{label, kind, command}, ...]`` -> :class:`LabeledAlternatives`
  (only meaningful for ``dev``; one alternative is chosen per invocation)
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from launchpad.errors import ExitCode, LaunchpadError


class AlternativeKind(str, Enum):
    SCRIPT = "script"
    DOCKER = "docker"
    SHELL = "shell"


@dataclass(frozen=True)
class SingleCommand:
    text: str

    def tokens(self) -> list[str]:
        return shlex.split(self.text)


@dataclass(frozen=True)
class CommandList:
    args: tuple[str, ...]

    def tokens(self) -> list[str]:
        return list(self.args)


@dataclass(frozen=True)
class LabeledCommand:
    label: str
    kind: AlternativeKind
    command: SingleCommand | CommandList


@dataclass(frozen=True)
class LabeledAlternatives:
    choices: tuple[LabeledCommand, ...]


CommandOverride = SingleCommand | CommandList | LabeledAlternatives


def _invalid(repository: str, command: str, detail: str) -> LaunchpadError:
    return LaunchpadError(
        f"Invalid command override for {repository}:{command}",
        code=ExitCode.RESOLUTION_ERROR,
        hint=detail,
    )


def _parse_simple(raw: object, *, repository: str, command: str) -> SingleCommand | CommandList:
    if isinstance(raw, str):
        if not raw.strip():
            raise _invalid(repository, command, "Override command cannot be empty.")
        try:
            shlex.split(raw)
        except ValueError as exc:
            raise _invalid(repository, command, f"Unparseable command text: {exc}.") from exc
        return SingleCommand(text=raw.strip())
    if isinstance(raw, list) and raw and all(isinstance(item, str) and item for item in raw):
        return CommandList(args=tuple(raw))
    raise _invalid(repository, command, "Use a string, a list of strings or a list of {label, kind, command} tables.")


def _parse_alternative(raw: Mapping[str, object], *, repository: str, command: str) -> LabeledCommand:
    label = raw.get("label")
    if not isinstance(label, str) or not label.strip():
        raise _invalid(repository, command, "Every alternative needs a non-empty label.")
    kind_value = raw.get("kind", AlternativeKind.SCRIPT.value)
    try:
        kind = AlternativeKind(str(kind_value).strip().lower())
    except ValueError as exc:
        accepted = ", ".join(item.value for item in AlternativeKind)
        raise _invalid(repository, command, f"Alternative kind must be one of: {accepted}.") from exc
    return LabeledCommand(
        label=label.strip(),
        kind=kind,
        command=_parse_simple(raw.get("command"), repository=repository, command=command),
    )


def parse_override(raw: object, *, repository: str = "", command: str = "") -> CommandOverride:
    if isinstance(raw, list) and raw and all(isinstance(item, Mapping) for item in raw):
        if command and command != "dev":
            raise _invalid(repository, command, "Labeled alternatives are only supported for dev.")
        return LabeledAlternatives(
            choices=tuple(_parse_alternative(item, repository=repository, command=command) for item in raw)
        )
    return _parse_simple(raw, repository=repository, command=command)
