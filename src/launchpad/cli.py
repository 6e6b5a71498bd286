"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from .commands.models import RunOptions
from .config import AppConfig, load_config, save_config
from .errors import ExitCode, LaunchpadError, user_facing_error
from .logging import LOG_LEVELS, configure_logging, default_log_path, normalize_level
from .prompts import prompt_alternative
from .reporting import ConsoleReporter
from .runner import AppRunner
from .workspace.repositories import discover_repositories

RunnerFactory = Callable[[AppConfig], AppRunner]
Handler = Callable[[AppRunner, argparse.Namespace], Awaitable[int]]


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized is None:
        accepted = ", ".join(LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _lines_type(value: str) -> int:
    try:
        lines = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--lines must be an integer") from exc
    if lines < 1:
        raise argparse.ArgumentTypeError("--lines must be at least 1")
    return lines


def _add_selection(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-r", "--repos", nargs="+", default=None, metavar="NAME")
    parser.add_argument("-a", "--all", action="store_true")


def _add_run_flags(parser: argparse.ArgumentParser, *, parallel: bool) -> None:
    _add_selection(parser)
    parser.add_argument("--parallel", action=argparse.BooleanOptionalAction, default=parallel)
    parser.add_argument(
        "--attach",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Keep streaming long-running output until it exits (Ctrl+C detaches)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="launchpad")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument(
        "--log-level",
        type=_log_level_type,
        default=None,
        help="DEBUG, INFO, WARN or ERROR (default: $LAUNCHPAD_LOG_LEVEL or INFO)",
    )
    parser.add_argument("--log-file", type=Path, default=None)
    commands = parser.add_subparsers(dest="action", required=True)

    run_parser = commands.add_parser("run", help="Run a command across repositories")
    run_parser.add_argument("logical_command", metavar="command")
    _add_run_flags(run_parser, parallel=False)
    run_parser.add_argument("-e", "--env", dest="environment", default="dev")
    run_parser.add_argument("-w", "--watch", action="store_true")
    run_parser.add_argument("--fix", action="store_true")
    run_parser.add_argument("--volumes", action="store_true")
    run_parser.set_defaults(handler=_cmd_run)

    for name, help_text in (("dev", "Start repositories in dev mode"), ("start", "Start repositories")):
        shortcut = commands.add_parser(name, help=help_text)
        _add_run_flags(shortcut, parallel=True)
        shortcut.set_defaults(
            handler=_cmd_run,
            logical_command=name,
            environment="dev",
            watch=name == "dev",
            fix=False,
            volumes=False,
        )

    build_cmd = commands.add_parser("build", help="Build repositories")
    _add_run_flags(build_cmd, parallel=True)
    build_cmd.add_argument("-e", "--env", dest="environment", default="prod")
    build_cmd.set_defaults(handler=_cmd_run, logical_command="build", watch=False, fix=False, volumes=False)

    test_parser = commands.add_parser("test", help="Run repository tests")
    _add_run_flags(test_parser, parallel=False)
    test_parser.add_argument("-w", "--watch", action="store_true")
    test_parser.set_defaults(handler=_cmd_run, logical_command="test", environment="dev", fix=False, volumes=False)

    lint_parser = commands.add_parser("lint", help="Lint repositories")
    _add_run_flags(lint_parser, parallel=True)
    lint_parser.add_argument("--fix", action="store_true")
    lint_parser.set_defaults(handler=_cmd_run, logical_command="lint", environment="dev", watch=False, volumes=False)

    down_parser = commands.add_parser("down", help="Take Docker Compose services down")
    _add_run_flags(down_parser, parallel=False)
    down_parser.add_argument("--volumes", action="store_true")
    down_parser.set_defaults(handler=_cmd_run, logical_command="down", environment="dev", watch=False, fix=False)

    stop_parser = commands.add_parser("stop", help="Stop running processes")
    _add_selection(stop_parser)
    stop_parser.set_defaults(handler=_cmd_stop)

    kill_parser = commands.add_parser("kill", help="Kill running processes")
    kill_parser.add_argument("--force", action="store_true")
    kill_parser.add_argument("-r", "--repos", nargs="+", default=None, metavar="NAME")
    kill_parser.set_defaults(handler=_cmd_kill)

    status_parser = commands.add_parser("status", help="Show running processes")
    status_parser.set_defaults(handler=_cmd_status)

    logs_parser = commands.add_parser("logs", help="Show the latest log for a repository")
    logs_parser.add_argument("-r", "--repo", required=True, metavar="NAME")
    logs_parser.add_argument("-f", "--follow", action="store_true")
    logs_parser.add_argument("--lines", type=_lines_type, default=None)
    logs_parser.set_defaults(handler=_cmd_logs)

    list_parser = commands.add_parser("list", help="List workspace repositories")
    list_parser.add_argument("--detailed", action="store_true")
    list_parser.set_defaults(handler=_cmd_list)

    init_parser = commands.add_parser("init", help="Record the workspace in the config file")
    init_parser.add_argument("--workspace", type=Path, required=True)
    init_parser.set_defaults(handler=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def _dedupe(names: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def select_repositories(namespace: argparse.Namespace, app: AppRunner) -> list[str]:
    if getattr(namespace, "all", False):
        names = list(app.config.repositories) or [repo.name for repo in discover_repositories(app.workspace)]
        if not names:
            raise LaunchpadError(
                "No repositories found in workspace.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Run 'launchpad init --workspace PATH' first.",
            )
        return names
    if namespace.repos:
        return _dedupe(namespace.repos)
    raise LaunchpadError(
        "No repositories selected.",
        code=ExitCode.VALIDATION_ERROR,
        hint="Pass --repos NAME ... or --all.",
    )


async def _cmd_run(app: AppRunner, namespace: argparse.Namespace) -> int:
    repositories = select_repositories(namespace, app)
    options = RunOptions(
        environment=namespace.environment,
        parallel=namespace.parallel,
        watch=namespace.watch,
        fix=namespace.fix,
        volumes=namespace.volumes,
    )
    command = namespace.logical_command
    app.reporter.info(f"Running '{command}' on {len(repositories)} repositories...")
    app.reporter.detail(f"Environment: {options.environment}")
    app.reporter.detail(f"Parallel: {'Yes' if options.parallel else 'No'}")
    app.reporter.detail(f"Repositories: {', '.join(repositories)}")

    batch = await app.run_command(command, repositories, options)
    if namespace.attach and app.supervisor.running():
        app.reporter.detail("Streaming output (Ctrl+C to detach)...")
        await app.wait_for_exit()
    if not batch.succeeded:
        return int(ExitCode.PROCESS_ERROR)
    return int(ExitCode.SUCCESS)


async def _cmd_stop(app: AppRunner, namespace: argparse.Namespace) -> int:
    if namespace.all:
        await app.stop()
    elif namespace.repos:
        await app.stop(_dedupe(namespace.repos))
    else:
        raise LaunchpadError(
            "No repositories selected.",
            code=ExitCode.VALIDATION_ERROR,
            hint="Pass --repos NAME ... or --all.",
        )
    return int(ExitCode.SUCCESS)


async def _cmd_kill(app: AppRunner, namespace: argparse.Namespace) -> int:
    repositories = _dedupe(namespace.repos) if namespace.repos else None
    await app.kill(force=namespace.force, repositories=repositories)
    return int(ExitCode.SUCCESS)


async def _cmd_status(app: AppRunner, namespace: argparse.Namespace) -> int:
    app.show_status()
    return int(ExitCode.SUCCESS)


async def _cmd_logs(app: AppRunner, namespace: argparse.Namespace) -> int:
    found = await app.show_logs(namespace.repo, follow=namespace.follow, lines=namespace.lines)
    return int(ExitCode.SUCCESS) if found else int(ExitCode.RUNTIME_ERROR)


async def _cmd_list(app: AppRunner, namespace: argparse.Namespace) -> int:
    app.list_repositories(detailed=namespace.detailed)
    return int(ExitCode.SUCCESS)


def init_workspace(namespace: argparse.Namespace, config: AppConfig) -> int:
    workspace = namespace.workspace.expanduser().resolve()
    if not workspace.is_dir():
        raise LaunchpadError(
            f"Workspace not found: {workspace}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Create the directory or pass an existing path.",
        )
    repositories = [repo.name for repo in discover_repositories(workspace)]
    config.workspace_path = str(workspace)
    config.repositories = repositories
    path = save_config(config, namespace.config)

    reporter = ConsoleReporter()
    reporter.success(f"Workspace saved to {path}")
    reporter.detail(f"Workspace: {workspace}")
    if repositories:
        reporter.detail(f"Repositories: {', '.join(repositories)}")
    else:
        reporter.warning("No repositories found in workspace.")
    return int(ExitCode.SUCCESS)


def default_runner_factory(config: AppConfig) -> AppRunner:
    selector = prompt_alternative if sys.stdin.isatty() else None
    return AppRunner(config, selector=selector)


def run_cli_flow(namespace: argparse.Namespace, *, runner_factory: RunnerFactory | None = None) -> int:
    config = load_config(namespace.config)
    if namespace.action == "init":
        return init_workspace(namespace, config)
    app = (runner_factory or default_runner_factory)(config)
    handler: Handler = namespace.handler
    return asyncio.run(handler(app, namespace))


def main(
    argv: Sequence[str] | None = None,
    *,
    runner_factory: RunnerFactory | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return exc.code if isinstance(exc.code, int) else int(ExitCode.INVALID_ARGS)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level, log_file=log_path)

    try:
        logger.debug("Starting CLI flow action=%s", namespace.action)
        return run_cli_flow(namespace, runner_factory=runner_factory)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        print("Interrupted. Running processes were left untouched.", file=sys.stderr)
        return int(ExitCode.INTERRUPTED)
    except LaunchpadError as exc:
        logger.error(
            "Handled LaunchpadError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(user_facing_error("Unexpected runtime failure", hint=f"Inspect logs: {log_path}"), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
