"""Spawn, track, stream and tear down repository processes.

All registry edits happen on the event loop thread. Records are keyed by
``(repository, command)`` and are removed exactly once, either when the
child exits or when a stop/kill strategy for it completes, whichever
comes first.
"""

from __future__ import annotations

import asyncio
import logging as py_logging
import os
import signal
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TextIO

from launchpad.commands.models import RunOptions, is_long_running
from launchpad.docker.compose import CommandResult, CommandRunner, ComposeCommands, run_command, to_executable
from launchpad.docker.detector import PLAIN, DockerClassification, ExecutionMode
from launchpad.errors import CommandFailedError, ExitCode, LaunchpadError
from launchpad.logs.manager import log_file_name
from launchpad.process.models import (
    TERMINAL_STATES,
    ProcessExit,
    ProcessKey,
    ProcessState,
    ProcessStatus,
    RunningProcess,
)
from launchpad.reporting import ConsoleReporter
from launchpad.workspace.repositories import Repository

logger = py_logging.getLogger(__name__)

DEFAULT_STARTUP_GRACE_SECONDS = 1.0
DEFAULT_STOP_TIMEOUT_SECONDS = 2.0
DEFAULT_HISTORY_LIMIT = 50
_KILL_WAIT_SECONDS = 5.0

GRACEFUL_SIGNAL = signal.SIGTERM
FORCEFUL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)

SpawnFunc = Callable[..., Awaitable[asyncio.subprocess.Process]]
LaunchFunc = Callable[[str], Awaitable[object]]


@dataclass(frozen=True)
class BatchOutcome:
    repository: str
    success: bool
    error: str = ""


@dataclass
class BatchResult:
    command: str
    parallel: bool
    outcomes: list[BatchOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    @property
    def failed(self) -> list[str]:
        return [outcome.repository for outcome in self.outcomes if not outcome.success]


async def _read_line(stream: asyncio.StreamReader) -> bytes:
    """Read one line of any length, or what remains before EOF."""
    parts: list[bytes] = []
    while True:
        try:
            parts.append(await stream.readuntil(b"\n"))
        except asyncio.IncompleteReadError as exc:
            parts.append(exc.partial)
        except asyncio.LimitOverrunError as exc:
            # Longer than the reader limit; keep draining until the newline.
            parts.append(await stream.read(max(exc.consumed, 1)))
            continue
        return b"".join(parts)


class ProcessSupervisor:
    def __init__(
        self,
        log_dir: str | Path,
        *,
        reporter: ConsoleReporter | None = None,
        startup_grace_seconds: float = DEFAULT_STARTUP_GRACE_SECONDS,
        stop_timeout_seconds: float = DEFAULT_STOP_TIMEOUT_SECONDS,
        docker_binary: str = "docker",
        spawn: SpawnFunc | None = None,
        command_runner: CommandRunner | None = None,
        new_session: bool = True,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.startup_grace_seconds = startup_grace_seconds
        self.stop_timeout_seconds = stop_timeout_seconds
        self.docker_binary = docker_binary
        self._reporter = reporter or ConsoleReporter()
        self._spawn = spawn or asyncio.create_subprocess_exec
        self._command_runner = command_runner or run_command
        self._new_session = new_session
        self._records: dict[ProcessKey, RunningProcess] = {}
        self._history: deque[ProcessExit] = deque(maxlen=history_limit)

    # -- queries -----------------------------------------------------------

    def get(self, repository: str, command: str) -> RunningProcess | None:
        return self._records.get((repository, command))

    def running(self) -> list[RunningProcess]:
        return [self._records[key] for key in sorted(self._records)]

    def status(self) -> list[ProcessStatus]:
        now = time.monotonic()
        return [
            ProcessStatus(
                repository=record.repository.name,
                command=record.command,
                pid=record.pid,
                uptime_seconds=now - record.started_monotonic,
                state=record.state,
                docker=record.classification.summary(),
                log_file=record.log_file,
                services=record.classification.services,
            )
            for record in self.running()
        ]

    def history(self) -> list[ProcessExit]:
        return list(self._history)

    # -- spawning ----------------------------------------------------------

    async def run_single(
        self,
        repository: Repository,
        command: str,
        argv: Sequence[str],
        options: RunOptions,
        classification: DockerClassification = PLAIN,
    ) -> RunningProcess:
        if not repository.path.is_dir():
            raise LaunchpadError(
                f"Repository '{repository.name}' not found at {repository.path}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Clone the repository or fix the workspace path.",
            )
        key = (repository.name, command)
        if key in self._records:
            raise LaunchpadError(
                f"'{command}' is already running for {repository.name}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Stop the running process before starting it again.",
            )
        if not argv:
            raise LaunchpadError(
                f"Resolved command for '{command}' is empty.",
                code=ExitCode.RESOLUTION_ERROR,
                hint="Check the repository command override.",
            )

        long_running = is_long_running(command)
        started_at = datetime.now()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / log_file_name(repository.name, command, int(started_at.timestamp() * 1000))
        executable = to_executable(argv, docker_binary=self.docker_binary)

        self._reporter.info(" ".join(argv), repository.name)
        if classification.is_compose_managed:
            self._reporter.detail(f"   Docker Compose detected: {classification.compose_file}")
        if classification.npm_uses_docker:
            self._reporter.detail(f"   Script uses Docker Compose: {classification.docker_script}")
        logger.debug(
            "Spawning repository=%s command=%s argv=%s cwd=%s watch=%s environment=%s",
            repository.name,
            command,
            executable,
            repository.path,
            options.watch,
            options.environment,
        )

        try:
            process = await self._spawn(
                *executable,
                cwd=str(repository.path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=self._new_session,
            )
        except OSError as exc:
            logger.error("Spawn failed repository=%s command=%s error=%s", repository.name, command, exc)
            self._reporter.error(f"{command} failed to start: {exc}", repository.name)
            raise LaunchpadError(
                f"Failed to start '{command}' for {repository.name}",
                code=ExitCode.PROCESS_ERROR,
                hint=str(exc) or "Check that the executable is installed.",
            ) from exc

        record = RunningProcess(
            repository=repository,
            command=command,
            argv=tuple(argv),
            process=process,
            pid=process.pid,
            started_at=started_at,
            started_monotonic=time.monotonic(),
            log_file=log_file,
            classification=classification,
            long_running=long_running,
        )
        self._records[key] = record
        handle = log_file.open("a", encoding="utf-8")
        record.watcher = asyncio.create_task(self._supervise(record, handle))

        if long_running:
            await asyncio.sleep(self.startup_grace_seconds)
            if record.state == ProcessState.STARTING:
                record.state = ProcessState.RUNNING
            if record.alive:
                self._reporter.success(f"{command} started (PID: {record.pid})", repository.name)
            return record

        returncode = await asyncio.shield(record.watcher)
        if returncode == 0:
            self._reporter.success(f"{command} completed successfully", repository.name)
            return record
        raise CommandFailedError.from_exit(repository.name, command, returncode, log_file)

    async def _supervise(self, record: RunningProcess, handle: TextIO) -> int:
        try:
            pumps = [
                asyncio.create_task(self._pump(record, record.process.stdout, "STDOUT", handle)),
                asyncio.create_task(self._pump(record, record.process.stderr, "STDERR", handle)),
            ]
            returncode = await record.process.wait()
            await asyncio.gather(*pumps, return_exceptions=True)
        finally:
            handle.close()

        record.returncode = returncode
        if returncode != 0 and record.state not in TERMINAL_STATES:
            self._reporter.error(f"{record.command} failed with code {returncode}", record.repository.name)
        self._finish(record, ProcessState.EXITED)
        return returncode

    async def _pump(
        self,
        record: RunningProcess,
        stream: asyncio.StreamReader | None,
        tag: str,
        handle: TextIO,
    ) -> None:
        if stream is None:
            return
        while True:
            chunk = await _read_line(stream)
            if not chunk:
                return
            line = chunk.decode("utf-8", errors="replace")
            if not line.endswith("\n"):
                line += "\n"
            handle.write(f"[{tag}] {line}")
            handle.flush()
            if record.state == ProcessState.STARTING:
                record.state = ProcessState.RUNNING
            if tag == "STDERR" or record.long_running:
                self._reporter.output(record.repository.name, line.rstrip(), stream=tag.lower())

    def _finish(self, record: RunningProcess, state: ProcessState) -> None:
        if record.state in TERMINAL_STATES:
            return
        record.state = state
        if self._records.get(record.key) is record:
            del self._records[record.key]
        self._history.append(
            ProcessExit(
                repository=record.repository.name,
                command=record.command,
                pid=record.pid,
                state=state,
                returncode=record.returncode,
                log_file=record.log_file,
            )
        )
        logger.debug(
            "Process finished repository=%s command=%s pid=%s state=%s returncode=%s",
            record.repository.name,
            record.command,
            record.pid,
            state.value,
            record.returncode,
        )

    async def wait_for_exit(self) -> None:
        """Block until every registered process has exited or been torn down."""
        while True:
            pending = {record.watcher for record in self._records.values() if record.watcher is not None}
            if not pending:
                return
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

    # -- batches -----------------------------------------------------------

    async def run_batch(
        self,
        repositories: Sequence[str],
        command: str,
        launch: LaunchFunc,
        *,
        parallel: bool,
    ) -> BatchResult:
        if parallel:
            return await self._run_parallel(repositories, command, launch)
        return await self._run_sequential(repositories, command, launch)

    async def _run_parallel(self, repositories: Sequence[str], command: str, launch: LaunchFunc) -> BatchResult:
        self._reporter.info(f"Running '{command}' in parallel on {len(repositories)} repositories...")
        results = await asyncio.gather(*(launch(name) for name in repositories), return_exceptions=True)

        batch = BatchResult(command=command, parallel=True)
        for name, result in zip(repositories, results):
            if isinstance(result, BaseException):
                if not isinstance(result, LaunchpadError):
                    logger.error("Unexpected failure repository=%s command=%s", name, command, exc_info=result)
                batch.outcomes.append(BatchOutcome(repository=name, success=False, error=str(result)))
            else:
                batch.outcomes.append(BatchOutcome(repository=name, success=True))

        if batch.succeeded:
            self._reporter.success(f"All repositories completed '{command}' successfully!")
        else:
            self._reporter.error(f"Some repositories failed to complete '{command}'")
            for outcome in batch.outcomes:
                if not outcome.success:
                    self._reporter.detail(f"   {outcome.repository}: {outcome.error}")
        return batch

    async def _run_sequential(self, repositories: Sequence[str], command: str, launch: LaunchFunc) -> BatchResult:
        self._reporter.info(f"Running '{command}' sequentially on {len(repositories)} repositories...")
        batch = BatchResult(command=command, parallel=False)
        for name in repositories:
            try:
                await launch(name)
            except LaunchpadError as exc:
                error = str(exc)
            except Exception as exc:
                logger.exception("Unexpected failure repository=%s command=%s", name, command)
                error = str(exc) or type(exc).__name__
            else:
                batch.outcomes.append(BatchOutcome(repository=name, success=True))
                self._reporter.success(f"Completed '{command}'", name)
                continue
            batch.outcomes.append(BatchOutcome(repository=name, success=False, error=error))
            self._reporter.error(f"Failed '{command}'", name)
            self._reporter.detail(f"   Error: {error}")
            self._reporter.warning("Continuing with next repository...")
        return batch

    # -- termination -------------------------------------------------------

    async def stop(self, repository: str, command: str) -> bool:
        record = self._records.get((repository, command))
        if record is None:
            return False
        await self._stop_record(record)
        return True

    async def stop_all(self) -> int:
        return await self._stop_many(self.running())

    async def stop_repositories(self, names: Iterable[str]) -> int:
        wanted = set(names)
        return await self._stop_many([record for record in self.running() if record.repository.name in wanted])

    async def _stop_many(self, records: list[RunningProcess]) -> int:
        if not records:
            self._reporter.warning("No running processes to stop.")
            return 0
        self._reporter.info(f"Stopping {len(records)} running process(es)...")
        await asyncio.gather(*(self._stop_record(record) for record in records))
        self._reporter.success(f"Stopped {len(records)} process(es).")
        return len(records)

    async def _stop_record(self, record: RunningProcess) -> None:
        name = record.repository.name
        classification = record.classification
        try:
            if classification.mode == ExecutionMode.COMPOSE:
                self._reporter.info("Stopping Docker Compose services...", name)
                await self._run_teardown(record, ComposeCommands(classification.teardown_compose_file).stop())
            elif classification.mode == ExecutionMode.HYBRID:
                self._reporter.info("Stopping Docker services started by the script...", name)
                compose = ComposeCommands(classification.teardown_compose_file)
                await self._run_teardown(record, compose.stop(classification.services))
                self._send_signal(record, GRACEFUL_SIGNAL)
            else:
                self._reporter.info(f"Stopping process (PID: {record.pid})...", name)
                await self._terminate(record)
        except Exception as exc:
            logger.warning("Stop failed repository=%s command=%s error=%s", name, record.command, exc)
            self._reporter.error(f"Failed to stop: {exc}", name)
        finally:
            self._finish(record, ProcessState.STOPPED)

    async def _terminate(self, record: RunningProcess) -> None:
        if not self._send_signal(record, GRACEFUL_SIGNAL):
            return
        try:
            await asyncio.wait_for(asyncio.shield(record.process.wait()), timeout=self.stop_timeout_seconds)
        except asyncio.TimeoutError:
            self._reporter.warning("Force killing process...", record.repository.name)
            self._send_signal(record, FORCEFUL_SIGNAL)
            try:
                await asyncio.wait_for(asyncio.shield(record.process.wait()), timeout=_KILL_WAIT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Process did not exit after kill pid=%s", record.pid)

    async def kill(self, *, force: bool = False, repositories: Iterable[str] | None = None) -> int:
        records = self.running()
        if repositories is not None:
            wanted = set(repositories)
            records = [record for record in records if record.repository.name in wanted]
        if not records:
            self._reporter.warning("No running processes to kill.")
            return 0

        self._reporter.warning(f"{'Force killing' if force else 'Killing'} {len(records)} running process(es)...")
        for record in records:
            await self._kill_record(record, force=force)
        self._reporter.success(f"Killed {len(records)} process(es).")
        return len(records)

    async def _kill_record(self, record: RunningProcess, *, force: bool) -> None:
        name = record.repository.name
        classification = record.classification
        sig = FORCEFUL_SIGNAL if force else GRACEFUL_SIGNAL
        try:
            compose = ComposeCommands(classification.teardown_compose_file)
            if classification.mode == ExecutionMode.COMPOSE:
                self._reporter.info("Taking Docker Compose services down...", name)
                await self._run_teardown(record, compose.down(force=force))
            elif classification.mode == ExecutionMode.HYBRID:
                self._reporter.info("Removing Docker services started by the script...", name)
                if classification.services:
                    # `down` cannot target individual services.
                    await self._run_teardown(record, compose.stop(classification.services))
                    await self._run_teardown(record, compose.remove(classification.services))
                else:
                    await self._run_teardown(record, compose.down(force=force))
                self._send_signal(record, sig)
            else:
                self._reporter.info(f"Killing process (PID: {record.pid}) with {sig.name}...", name)
                self._send_signal(record, sig)
        except Exception as exc:
            logger.warning("Kill failed repository=%s command=%s error=%s", name, record.command, exc)
            self._reporter.error(f"Failed to kill: {exc}", name)
        finally:
            self._finish(record, ProcessState.KILLED)

    async def _run_teardown(self, record: RunningProcess, argv: list[str]) -> CommandResult | None:
        name = record.repository.name
        executable = to_executable(argv, docker_binary=self.docker_binary)
        logger.debug("Running teardown repository=%s argv=%s", name, executable)
        try:
            result = await self._command_runner(executable, cwd=record.repository.path)
        except OSError as exc:
            logger.warning("Teardown could not start repository=%s argv=%s error=%s", name, executable, exc)
            self._reporter.error(f"{' '.join(executable)} could not start: {exc}", name)
            return None
        if result.success:
            self._reporter.success(f"{' '.join(argv)} finished", name)
        else:
            logger.warning(
                "Teardown failed repository=%s argv=%s returncode=%s stderr=%s",
                name,
                executable,
                result.returncode,
                result.stderr.strip(),
            )
            self._reporter.error(f"{' '.join(argv)} failed with code {result.returncode}", name)
        return result

    def _send_signal(self, record: RunningProcess, sig: signal.Signals) -> bool:
        if not record.alive:
            return False
        try:
            if self._new_session and hasattr(os, "killpg"):
                os.killpg(record.pid, sig)
            else:
                record.process.send_signal(sig)
        except ProcessLookupError:
            return False
        except OSError as exc:
            logger.debug("Group signal failed pid=%s signal=%s error=%s", record.pid, sig, exc)
            try:
                record.process.send_signal(sig)
            except ProcessLookupError:
                return False
        logger.debug("Sent signal=%s pid=%s", sig, record.pid)
        return True
