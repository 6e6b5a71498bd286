"""Orchestration facade wiring detection, resolution and supervision."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Sequence

from rich.table import Table
from rich.text import Text

from launchpad.commands.models import RunOptions
from launchpad.commands.overrides import LabeledAlternatives, LabeledCommand, parse_override
from launchpad.commands.resolver import AlternativeSelector, CommandResolver
from launchpad.config import AppConfig
from launchpad.docker.detector import DockerClassification, DockerDetector
from launchpad.errors import ExitCode, LaunchpadError
from launchpad.logs.manager import LogManager
from launchpad.process.models import ProcessStatus, RunningProcess, format_uptime
from launchpad.process.supervisor import BatchResult, ProcessSupervisor
from launchpad.reporting import ConsoleReporter
from launchpad.workspace.package_manager import detect_package_manager
from launchpad.workspace.repositories import (
    Repository,
    RepositoryInfo,
    describe_repository,
    discover_repositories,
    repository_at,
)

logger = py_logging.getLogger(__name__)


class AppRunner:
    def __init__(
        self,
        config: AppConfig,
        *,
        reporter: ConsoleReporter | None = None,
        detector: DockerDetector | None = None,
        resolver: CommandResolver | None = None,
        supervisor: ProcessSupervisor | None = None,
        log_manager: LogManager | None = None,
        selector: AlternativeSelector | None = None,
    ) -> None:
        self.config = config
        self.workspace = config.resolved_workspace()
        self.logs_dir = config.resolved_logs_dir()
        self.reporter = reporter or ConsoleReporter()
        self.detector = detector or DockerDetector()
        self.resolver = resolver or CommandResolver(selector=selector)
        self.supervisor = supervisor or ProcessSupervisor(
            self.logs_dir,
            reporter=self.reporter,
            startup_grace_seconds=config.startup_grace_seconds,
            stop_timeout_seconds=config.stop_timeout_seconds,
            docker_binary=config.docker_binary,
        )
        self.log_manager = log_manager or LogManager(self.logs_dir, console=self.reporter.console)

    # -- running -----------------------------------------------------------

    async def run_command(self, command: str, repositories: Sequence[str], options: RunOptions) -> BatchResult:
        if not repositories:
            raise LaunchpadError(
                "No repositories selected.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Pass --repos NAME ... or --all.",
            )
        logger.debug(
            "Running command=%s repositories=%s parallel=%s environment=%s",
            command,
            list(repositories),
            options.parallel,
            options.environment,
        )

        async def launch(name: str) -> RunningProcess:
            return await self.run_single(command, name, options)

        return await self.supervisor.run_batch(repositories, command, launch, parallel=options.parallel)

    async def run_single(self, command: str, name: str, options: RunOptions) -> RunningProcess:
        repository = repository_at(self.workspace, name)
        argv, classification = await self.resolve(command, repository, options)
        return await self.supervisor.run_single(repository, command, argv, options, classification)

    async def resolve(
        self,
        command: str,
        repository: Repository,
        options: RunOptions,
    ) -> tuple[list[str], DockerClassification]:
        classification = self.detector.classify(repository.path, command)
        runner = detect_package_manager(repository.path, preferred=self.config.package_manager).value

        raw = self.config.command_override(repository.name, command)
        if raw is None:
            return self.resolver.resolve(command, options, classification, runner=runner), classification

        override = parse_override(raw, repository=repository.name, command=command)
        logger.debug("Using command override repository=%s command=%s", repository.name, command)
        if isinstance(override, LabeledAlternatives):
            choice = self._select(repository.name, override)
            self.reporter.info(f"Using '{choice.label}'", repository.name)
            return self.resolver.resolve_override(choice, options, runner=runner), classification
        return self.resolver.resolve_override(override, options, runner=runner), classification

    def _select(self, repository: str, alternatives: LabeledAlternatives) -> LabeledCommand:
        # Runs on the loop thread; Ctrl-C interrupts the prompt directly.
        return self.resolver.select_alternative(repository, alternatives)

    async def wait_for_exit(self) -> None:
        await self.supervisor.wait_for_exit()

    # -- teardown ----------------------------------------------------------

    async def stop(self, repositories: Sequence[str] | None = None) -> int:
        if repositories is None:
            return await self.supervisor.stop_all()
        return await self.supervisor.stop_repositories(repositories)

    async def kill(self, *, force: bool = False, repositories: Sequence[str] | None = None) -> int:
        return await self.supervisor.kill(force=force, repositories=repositories)

    # -- inspection --------------------------------------------------------

    def show_status(self) -> list[ProcessStatus]:
        console = self.reporter.console
        statuses = self.supervisor.status()
        if not statuses:
            console.print(Text("No processes running.", style="yellow"))
        else:
            table = Table(title="Running Processes")
            table.add_column("Repository", style="cyan")
            table.add_column("Command")
            table.add_column("PID", justify="right")
            table.add_column("Uptime", justify="right")
            table.add_column("State")
            table.add_column("Docker")
            table.add_column("Log")
            for status in statuses:
                table.add_row(
                    Text(status.repository),
                    Text(status.command),
                    str(status.pid),
                    format_uptime(status.uptime_seconds),
                    status.state.value,
                    Text(status.docker),
                    Text(str(status.log_file)),
                )
            console.print(table)

        history = self.supervisor.history()
        if history:
            table = Table(title="Recent Exits")
            table.add_column("Repository", style="cyan")
            table.add_column("Command")
            table.add_column("PID", justify="right")
            table.add_column("State")
            table.add_column("Code", justify="right")
            table.add_column("Log")
            for record in history:
                code = "-" if record.returncode is None else str(record.returncode)
                table.add_row(
                    Text(record.repository),
                    Text(record.command),
                    str(record.pid),
                    Text(record.state.value, style="red" if record.failed else ""),
                    code,
                    Text(str(record.log_file)),
                )
            console.print(table)
        return statuses

    async def show_logs(self, repository: str, *, follow: bool = False, lines: int | None = None) -> bool:
        known = {repo.name for repo in discover_repositories(self.workspace)} | set(self.config.repositories)
        return await self.log_manager.show(repository, follow=follow, lines=lines, known_repositories=known)

    def list_repositories(self, *, detailed: bool = False) -> list[RepositoryInfo]:
        console = self.reporter.console
        console.print(Text("Available Repositories", style="cyan"))
        repositories = discover_repositories(self.workspace)
        if not repositories:
            console.print(Text("No repositories found in workspace.", style="yellow"))
            return []

        running = {record.repository.name for record in self.supervisor.running()}
        infos: list[RepositoryInfo] = []
        for repository in repositories:
            info = describe_repository(repository)
            infos.append(info)
            line = Text(repository.name, style="bold")
            if info.version:
                line.append(f" v{info.version}", style="dim")
            if repository.name in running:
                line.append(" (running)", style="green")
            console.print(line)
            if info.description:
                console.print(Text(f"   {info.description}", style="dim"))
            if not detailed:
                continue
            console.print(Text(f"   Path: {info.path}", style="dim"))
            if info.scripts:
                console.print(Text(f"   Scripts: {', '.join(info.scripts)}", style="dim"))
            if info.docker_files:
                console.print(Text(f"   Docker: {', '.join(info.docker_files)}", style="dim"))
            console.print(Text(f"   Git: {'yes' if info.is_git else 'no'}", style="dim"))

        console.print(Text(f"Total: {len(repositories)} repositories", style="dim"))
        return infos
