"""Resolve logical commands into concrete argument vectors."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable, Sequence

from launchpad.commands.models import (
    LogicalCommand,
    Passthrough,
    RunOptions,
    ShellCommand,
    parse_command,
)
from launchpad.commands.overrides import (
    AlternativeKind,
    CommandList,
    LabeledAlternatives,
    LabeledCommand,
    SingleCommand,
)
from launchpad.docker.compose import COMPOSE_PROGRAM
from launchpad.docker.detector import DockerClassification
from launchpad.errors import ExitCode, LaunchpadError
from launchpad.workspace.package_manager import PACKAGE_MANAGER_NAMES

logger = py_logging.getLogger(__name__)

# Receives the repository name and the alternatives, returns the chosen index.
AlternativeSelector = Callable[[str, Sequence[LabeledCommand]], int]
ArgsBuilder = Callable[[RunOptions, str], list[str]]

# Service used for one-off runs on the compose path.
COMPOSE_APP_SERVICE = "app"


def _watch_suffix(options: RunOptions) -> list[str]:
    return ["--", "--watch"] if options.watch else []


def _compose_start(options: RunOptions, _runner: str) -> list[str]:
    by_environment = {"dev": ["up", "--build"], "prod": ["up", "-d"]}
    return list(by_environment.get(options.environment, ["up"]))


def _compose_test(options: RunOptions, runner: str) -> list[str]:
    return ["run", "--rm", COMPOSE_APP_SERVICE, runner, "test", *_watch_suffix(options)]


def _compose_down(options: RunOptions, _runner: str) -> list[str]:
    if options.volumes:
        return ["down", "--volumes", "--remove-orphans"]
    return ["down"]


_COMPOSE_TABLE: dict[LogicalCommand, ArgsBuilder] = {
    LogicalCommand.DEV: lambda _options, _runner: ["up", "--build"],
    LogicalCommand.START: _compose_start,
    LogicalCommand.BUILD: lambda _options, _runner: ["build"],
    LogicalCommand.TEST: _compose_test,
    LogicalCommand.STOP: lambda _options, _runner: ["stop"],
    LogicalCommand.DOWN: _compose_down,
    LogicalCommand.LOGS: lambda _options, _runner: ["logs", "-f"],
}


def _plain_start(options: RunOptions, runner: str) -> list[str]:
    if options.environment == "dev":
        return [runner, "run", "dev"]
    return [runner, "start"]


def _plain_build(options: RunOptions, runner: str) -> list[str]:
    if options.environment == "dev":
        return [runner, "run", "build:dev"]
    return [runner, "run", "build"]


def _plain_lint(options: RunOptions, runner: str) -> list[str]:
    suffix = ["--", "--fix"] if options.fix else []
    return [runner, "run", "lint", *suffix]


_PLAIN_TABLE: dict[LogicalCommand, ArgsBuilder] = {
    LogicalCommand.DEV: lambda _options, runner: [runner, "run", "dev"],
    LogicalCommand.START: _plain_start,
    LogicalCommand.BUILD: _plain_build,
    LogicalCommand.TEST: lambda options, runner: [runner, "test", *_watch_suffix(options)],
    LogicalCommand.LINT: _plain_lint,
    LogicalCommand.INSTALL: lambda _options, runner: [runner, "install"],
    LogicalCommand.CLEAN: lambda _options, runner: [runner, "run", "clean"],
    LogicalCommand.TYPECHECK: lambda _options, runner: [runner, "run", "typecheck"],
}


def shell_invocation(script: str) -> list[str]:
    return ["sh", "-c", script]


class CommandResolver:
    def __init__(self, *, default_runner: str = "npm", selector: AlternativeSelector | None = None) -> None:
        self.default_runner = default_runner
        self._selector = selector

    def resolve(
        self,
        command: str,
        options: RunOptions,
        classification: DockerClassification,
        *,
        runner: str | None = None,
    ) -> list[str]:
        resolved_runner = runner or self.default_runner
        # Hybrid detection never changes the invocation; the script itself calls compose.
        if classification.is_compose_managed and classification.compose_file:
            argv = self.resolve_compose(command, options, classification.compose_file, runner=resolved_runner)
        else:
            argv = self.resolve_plain(command, options, runner=resolved_runner)
        logger.debug("Resolved command=%s mode=%s argv=%s", command, classification.mode.value, argv)
        return argv

    def resolve_compose(
        self,
        command: str,
        options: RunOptions,
        compose_file: str,
        *,
        runner: str | None = None,
    ) -> list[str]:
        resolved_runner = runner or self.default_runner
        parsed = parse_command(command)
        if isinstance(parsed, ShellCommand):
            return shell_invocation(parsed.script)
        base = [COMPOSE_PROGRAM, "-f", compose_file]
        if isinstance(parsed, LogicalCommand) and parsed in _COMPOSE_TABLE:
            return [*base, *_COMPOSE_TABLE[parsed](options, resolved_runner)]
        return [*base, "run", "--rm", COMPOSE_APP_SERVICE, resolved_runner, "run", command]

    def resolve_plain(self, command: str, options: RunOptions, *, runner: str | None = None) -> list[str]:
        resolved_runner = runner or self.default_runner
        parsed = parse_command(command)
        if isinstance(parsed, ShellCommand):
            return shell_invocation(parsed.script)
        if isinstance(parsed, LogicalCommand) and parsed in _PLAIN_TABLE:
            return _PLAIN_TABLE[parsed](options, resolved_runner)
        name = parsed.name if isinstance(parsed, Passthrough) else parsed.value
        return [resolved_runner, "run", name]

    def resolve_override(
        self,
        override: SingleCommand | CommandList | LabeledCommand,
        options: RunOptions,
        *,
        runner: str | None = None,
    ) -> list[str]:
        if isinstance(override, LabeledCommand):
            if override.kind == AlternativeKind.SHELL:
                inner = override.command
                text = inner.text if isinstance(inner, SingleCommand) else " ".join(inner.args)
                return shell_invocation(text)
            if override.kind == AlternativeKind.DOCKER:
                return override.command.tokens()
            override = override.command

        if isinstance(override, SingleCommand) and override.text.startswith("sh:"):
            return self.resolve_plain(override.text, options, runner=runner)

        tokens = override.tokens()
        if not tokens:
            raise LaunchpadError(
                "Override command is empty.",
                code=ExitCode.RESOLUTION_ERROR,
                hint="Provide a command for the repository override.",
            )
        if tokens[0] in PACKAGE_MANAGER_NAMES:
            return tokens
        return [*self.resolve_plain(tokens[0], options, runner=runner), *tokens[1:]]

    def select_alternative(self, repository: str, alternatives: LabeledAlternatives) -> LabeledCommand:
        choices = alternatives.choices
        if not choices:
            raise LaunchpadError(
                f"No dev alternatives configured for {repository}.",
                code=ExitCode.RESOLUTION_ERROR,
                hint="Add at least one labeled alternative or remove the override.",
            )
        if len(choices) == 1:
            return choices[0]
        if self._selector is None:
            raise LaunchpadError(
                f"Multiple dev alternatives configured for {repository}.",
                code=ExitCode.RESOLUTION_ERROR,
                hint="Run interactively to choose an alternative.",
            )
        index = self._selector(repository, choices)
        if not isinstance(index, int) or index < 0 or index >= len(choices):
            raise LaunchpadError(
                f"Invalid alternative selection for {repository}: {index}",
                code=ExitCode.RESOLUTION_ERROR,
                hint=f"Choose a value between 1 and {len(choices)}.",
            )
        logger.debug("Selected dev alternative repository=%s label=%s", repository, choices[index].label)
        return choices[index]
