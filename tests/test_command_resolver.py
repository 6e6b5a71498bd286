from __future__ import annotations

from collections.abc import Sequence

import pytest

from launchpad.commands.models import RunOptions
from launchpad.commands.overrides import (
    AlternativeKind,
    CommandList,
    LabeledAlternatives,
    LabeledCommand,
    SingleCommand,
)
from launchpad.commands.resolver import CommandResolver
from launchpad.docker.detector import DockerClassification
from launchpad.errors import ExitCode, LaunchpadError

COMPOSE = DockerClassification(is_compose_managed=True, compose_file="docker-compose.yml")
HYBRID = DockerClassification(npm_uses_docker=True, docker_script="docker compose up web", services=("web",))
PLAIN = DockerClassification()


def test_payments_dev_resolves_to_plain_runner() -> None:
    argv = CommandResolver().resolve("dev", RunOptions(environment="dev"), PLAIN, runner="pnpm")

    assert argv == ["pnpm", "run", "dev"]


def test_orders_test_watch_runs_inside_app_service() -> None:
    argv = CommandResolver().resolve("test", RunOptions(watch=True), COMPOSE, runner="npm")

    assert argv == ["compose", "-f", "docker-compose.yml", "run", "--rm", "app", "npm", "test", "--", "--watch"]


def test_compose_dev_starts_with_up_build() -> None:
    argv = CommandResolver().resolve("dev", RunOptions(), COMPOSE)

    assert argv[:5] == ["compose", "-f", "docker-compose.yml", "up", "--build"]


@pytest.mark.parametrize(
    ("environment", "tail"),
    [("prod", ["up", "-d"]), ("dev", ["up", "--build"]), ("staging", ["up"])],
)
def test_compose_start_depends_on_environment(environment: str, tail: list[str]) -> None:
    argv = CommandResolver().resolve("start", RunOptions(environment=environment), COMPOSE)

    assert argv == ["compose", "-f", "docker-compose.yml", *tail]


def test_compose_down_with_volumes() -> None:
    argv = CommandResolver().resolve("down", RunOptions(volumes=True), COMPOSE)

    assert argv == ["compose", "-f", "docker-compose.yml", "down", "--volumes", "--remove-orphans"]


def test_compose_unknown_command_runs_script_in_app_service() -> None:
    argv = CommandResolver(default_runner="yarn").resolve("seed", RunOptions(), COMPOSE)

    assert argv == ["compose", "-f", "docker-compose.yml", "run", "--rm", "app", "yarn", "run", "seed"]


@pytest.mark.parametrize("command", ["dev", "start", "build", "test", "lint", "seed"])
def test_hybrid_classification_never_changes_invocation(command: str) -> None:
    resolver = CommandResolver()
    options = RunOptions(environment="prod", watch=True, fix=True)

    assert resolver.resolve(command, options, HYBRID) == resolver.resolve(command, options, PLAIN)


def test_plain_table_entries() -> None:
    resolver = CommandResolver(default_runner="npm")

    assert resolver.resolve_plain("start", RunOptions(environment="prod")) == ["npm", "start"]
    assert resolver.resolve_plain("start", RunOptions(environment="dev")) == ["npm", "run", "dev"]
    assert resolver.resolve_plain("build", RunOptions(environment="dev")) == ["npm", "run", "build:dev"]
    assert resolver.resolve_plain("build", RunOptions(environment="prod")) == ["npm", "run", "build"]
    assert resolver.resolve_plain("lint", RunOptions(fix=True)) == ["npm", "run", "lint", "--", "--fix"]
    assert resolver.resolve_plain("install", RunOptions()) == ["npm", "install"]
    assert resolver.resolve_plain("typecheck", RunOptions()) == ["npm", "run", "typecheck"]


def test_plain_unknown_command_is_passed_through() -> None:
    assert CommandResolver().resolve_plain("storybook", RunOptions()) == ["npm", "run", "storybook"]


def test_shell_prefix_resolves_to_sh_on_both_paths() -> None:
    resolver = CommandResolver()

    assert resolver.resolve("sh: make up", RunOptions(), PLAIN) == ["sh", "-c", "make up"]
    assert resolver.resolve("sh: make up", RunOptions(), COMPOSE) == ["sh", "-c", "make up"]


def test_override_with_package_manager_is_used_verbatim() -> None:
    argv = CommandResolver().resolve_override(SingleCommand("pnpm vitest run --coverage"), RunOptions(), runner="npm")

    assert argv == ["pnpm", "vitest", "run", "--coverage"]


def test_override_with_logical_first_token_resolves_and_appends() -> None:
    argv = CommandResolver().resolve_override(CommandList(("test", "--runInBand")), RunOptions(), runner="yarn")

    assert argv == ["yarn", "test", "--runInBand"]


def test_override_with_shell_prefix() -> None:
    argv = CommandResolver().resolve_override(SingleCommand("sh: ./scripts/dev.sh --hot"), RunOptions())

    assert argv == ["sh", "-c", "./scripts/dev.sh --hot"]


def test_labeled_docker_alternative_runs_tokens_verbatim() -> None:
    choice = LabeledCommand("Containers", AlternativeKind.DOCKER, SingleCommand("docker compose up api"))

    assert CommandResolver().resolve_override(choice, RunOptions()) == ["docker", "compose", "up", "api"]


def test_labeled_shell_alternative_wraps_in_sh() -> None:
    choice = LabeledCommand("Tunnel", AlternativeKind.SHELL, CommandList(("ngrok", "http", "3000")))

    assert CommandResolver().resolve_override(choice, RunOptions()) == ["sh", "-c", "ngrok http 3000"]


def test_labeled_script_alternative_resolves_like_override() -> None:
    choice = LabeledCommand("Local", AlternativeKind.SCRIPT, SingleCommand("dev"))

    assert CommandResolver().resolve_override(choice, RunOptions(), runner="bun") == ["bun", "run", "dev"]


def _alternatives(*labels: str) -> LabeledAlternatives:
    return LabeledAlternatives(
        choices=tuple(LabeledCommand(label, AlternativeKind.SCRIPT, SingleCommand("dev")) for label in labels)
    )


def test_single_alternative_needs_no_selector() -> None:
    chosen = CommandResolver().select_alternative("web", _alternatives("Only"))

    assert chosen.label == "Only"


def test_selector_receives_choices_and_picks_index() -> None:
    seen: list[tuple[str, int]] = []

    def selector(repository: str, choices: Sequence[LabeledCommand]) -> int:
        seen.append((repository, len(choices)))
        return 1

    chosen = CommandResolver(selector=selector).select_alternative("web", _alternatives("A", "B"))

    assert chosen.label == "B"
    assert seen == [("web", 2)]


def test_multiple_alternatives_without_selector_raise() -> None:
    with pytest.raises(LaunchpadError) as exc_info:
        CommandResolver().select_alternative("web", _alternatives("A", "B"))

    assert exc_info.value.code == ExitCode.RESOLUTION_ERROR


def test_out_of_range_selection_raises() -> None:
    resolver = CommandResolver(selector=lambda _repo, _choices: 5)

    with pytest.raises(LaunchpadError):
        resolver.select_alternative("web", _alternatives("A", "B"))
