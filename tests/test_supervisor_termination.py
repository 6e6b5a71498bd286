from __future__ import annotations

import asyncio
import io
import signal
import sys
import time
from pathlib import Path

import pytest
from rich.console import Console

from launchpad.commands.models import RunOptions
from launchpad.docker.compose import CommandResult
from launchpad.docker.detector import DockerClassification
from launchpad.process.models import ProcessState, RunningProcess
from launchpad.process.supervisor import ProcessSupervisor
from launchpad.reporting import ConsoleReporter
from launchpad.workspace.repositories import Repository

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")

SLEEPER = [sys.executable, "-c", "import time; print('ready', flush=True); time.sleep(30)"]
STUBBORN = [
    sys.executable,
    "-c",
    "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); print('ready', flush=True); time.sleep(30)",
]

COMPOSE = DockerClassification(is_compose_managed=True, compose_file="compose.yml")
HYBRID = DockerClassification(
    npm_uses_docker=True,
    docker_script="docker compose up -d web db",
    services=("web", "db"),
    compose_file_from_script="docker-compose.yml",
)
HYBRID_ALL = DockerClassification(npm_uses_docker=True, docker_script="docker compose up -d")


class RecordingRunner:
    def __init__(self, returncode: int = 0, error: OSError | None = None) -> None:
        self.returncode = returncode
        self.error = error
        self.calls: list[list[str]] = []

    async def __call__(self, args: list[str], *, cwd: Path) -> CommandResult:
        self.calls.append(list(args))
        if self.error is not None:
            raise self.error
        return CommandResult(args=tuple(args), returncode=self.returncode, stderr="boom" if self.returncode else "")


def _repo(tmp_path: Path, name: str) -> Repository:
    path = tmp_path / name
    path.mkdir(exist_ok=True)
    return Repository(name=name, path=path)


def _supervisor(tmp_path: Path, runner: RecordingRunner) -> tuple[ProcessSupervisor, ConsoleReporter]:
    reporter = ConsoleReporter(Console(file=io.StringIO(), width=200))
    supervisor = ProcessSupervisor(
        tmp_path / "logs",
        reporter=reporter,
        startup_grace_seconds=0.2,
        stop_timeout_seconds=0.5,
        command_runner=runner,
    )
    return supervisor, reporter


async def _start(
    supervisor: ProcessSupervisor,
    repo: Repository,
    classification: DockerClassification = DockerClassification(),
    argv: list[str] = SLEEPER,
) -> RunningProcess:
    record = await supervisor.run_single(repo, "dev", argv, RunOptions(), classification)
    deadline = time.monotonic() + 5
    while "[STDOUT] ready" not in record.log_file.read_text(encoding="utf-8"):
        assert time.monotonic() < deadline, "child never became ready"
        await asyncio.sleep(0.02)
    return record


async def _reap(record: RunningProcess) -> None:
    if record.alive:
        record.process.kill()
    if record.watcher is not None:
        await asyncio.wait_for(record.watcher, timeout=5)


@pytest.mark.asyncio
async def test_stop_all_on_empty_registry_is_a_noop(tmp_path: Path) -> None:
    runner = RecordingRunner()
    supervisor, reporter = _supervisor(tmp_path, runner)

    assert await supervisor.stop_all() == 0
    assert "No running processes to stop." in reporter.messages("warning")
    assert runner.calls == []


@pytest.mark.asyncio
async def test_stop_all_removes_every_plain_record(tmp_path: Path) -> None:
    supervisor, _ = _supervisor(tmp_path, RecordingRunner())
    records = [await _start(supervisor, _repo(tmp_path, name)) for name in ("a", "b", "c")]

    assert await supervisor.stop_all() == 3

    assert supervisor.status() == []
    for record in records:
        assert record.state == ProcessState.STOPPED
        assert record.process.returncode == -signal.SIGTERM
        await _reap(record)


@pytest.mark.asyncio
async def test_plain_stop_escalates_to_sigkill(tmp_path: Path) -> None:
    supervisor, reporter = _supervisor(tmp_path, RecordingRunner())
    record = await _start(supervisor, _repo(tmp_path, "web"), argv=STUBBORN)

    assert await supervisor.stop("web", "dev") is True

    assert record.process.returncode == -signal.SIGKILL
    assert "Force killing process..." in reporter.messages("warning")
    assert supervisor.status() == []
    await _reap(record)


@pytest.mark.asyncio
async def test_stop_unknown_record_returns_false(tmp_path: Path) -> None:
    supervisor, _ = _supervisor(tmp_path, RecordingRunner())

    assert await supervisor.stop("web", "dev") is False


@pytest.mark.asyncio
async def test_compose_stop_runs_compose_stop_only(tmp_path: Path) -> None:
    runner = RecordingRunner()
    supervisor, _ = _supervisor(tmp_path, runner)
    record = await _start(supervisor, _repo(tmp_path, "orders"), COMPOSE)

    await supervisor.stop_all()

    assert runner.calls == [["docker", "compose", "-f", "compose.yml", "stop"]]
    assert supervisor.status() == []
    assert record.alive
    await _reap(record)


@pytest.mark.asyncio
async def test_hybrid_stop_runs_compose_then_signals_child(tmp_path: Path) -> None:
    runner = RecordingRunner(returncode=1)
    supervisor, reporter = _supervisor(tmp_path, runner)
    record = await _start(supervisor, _repo(tmp_path, "web"), HYBRID)

    await supervisor.stop_repositories(["web"])
    await asyncio.wait_for(record.process.wait(), timeout=5)

    assert runner.calls == [["docker", "compose", "-f", "docker-compose.yml", "stop", "web", "db"]]
    assert record.process.returncode == -signal.SIGTERM
    assert any("failed with code 1" in message for message in reporter.messages("error"))
    await _reap(record)


@pytest.mark.asyncio
async def test_stop_repositories_leaves_other_records(tmp_path: Path) -> None:
    supervisor, _ = _supervisor(tmp_path, RecordingRunner())
    first = await _start(supervisor, _repo(tmp_path, "a"))
    second = await _start(supervisor, _repo(tmp_path, "b"))

    assert await supervisor.stop_repositories(["a"]) == 1

    assert [status.repository for status in supervisor.status()] == ["b"]
    await supervisor.stop_all()
    await _reap(first)
    await _reap(second)


@pytest.mark.asyncio
async def test_hybrid_force_kill_stops_then_removes_services(tmp_path: Path) -> None:
    runner = RecordingRunner()
    supervisor, _ = _supervisor(tmp_path, runner)
    record = await _start(supervisor, _repo(tmp_path, "web"), HYBRID)

    assert await supervisor.kill(force=True) == 1
    await asyncio.wait_for(record.process.wait(), timeout=5)

    assert runner.calls == [
        ["docker", "compose", "-f", "docker-compose.yml", "stop", "web", "db"],
        ["docker", "compose", "-f", "docker-compose.yml", "rm", "-f", "web", "db"],
    ]
    assert all("down" not in call for call in runner.calls)
    assert record.process.returncode == -signal.SIGKILL
    assert record.state == ProcessState.KILLED
    await _reap(record)


@pytest.mark.asyncio
async def test_hybrid_kill_without_services_uses_down(tmp_path: Path) -> None:
    runner = RecordingRunner()
    supervisor, _ = _supervisor(tmp_path, runner)
    record = await _start(supervisor, _repo(tmp_path, "web"), HYBRID_ALL)

    await supervisor.kill(force=False)
    await asyncio.wait_for(record.process.wait(), timeout=5)

    assert runner.calls == [["docker", "compose", "-f", "docker-compose.yml", "down"]]
    assert record.process.returncode == -signal.SIGTERM
    await _reap(record)


@pytest.mark.asyncio
async def test_compose_force_kill_removes_orphans_and_volumes(tmp_path: Path) -> None:
    runner = RecordingRunner()
    supervisor, _ = _supervisor(tmp_path, runner)
    record = await _start(supervisor, _repo(tmp_path, "orders"), COMPOSE)

    await supervisor.kill(force=True, repositories=["orders"])

    assert runner.calls == [["docker", "compose", "-f", "compose.yml", "down", "--remove-orphans", "--volumes"]]
    assert supervisor.status() == []
    await _reap(record)


@pytest.mark.asyncio
async def test_plain_kill_sends_signal_directly(tmp_path: Path) -> None:
    runner = RecordingRunner()
    supervisor, _ = _supervisor(tmp_path, runner)
    record = await _start(supervisor, _repo(tmp_path, "web"), argv=STUBBORN)

    await supervisor.kill(force=True)
    await asyncio.wait_for(record.process.wait(), timeout=5)

    assert runner.calls == []
    assert record.process.returncode == -signal.SIGKILL
    await _reap(record)


@pytest.mark.asyncio
async def test_missing_docker_cli_does_not_block_teardown(tmp_path: Path) -> None:
    runner = RecordingRunner(error=FileNotFoundError("docker"))
    supervisor, reporter = _supervisor(tmp_path, runner)
    compose_record = await _start(supervisor, _repo(tmp_path, "orders"), COMPOSE)
    plain_record = await _start(supervisor, _repo(tmp_path, "web"))

    assert await supervisor.kill(force=True) == 2

    assert supervisor.status() == []
    assert any("could not start" in message for message in reporter.messages("error"))
    await asyncio.wait_for(plain_record.process.wait(), timeout=5)
    assert plain_record.process.returncode == -signal.SIGKILL
    await _reap(compose_record)
    await _reap(plain_record)


@pytest.mark.asyncio
async def test_kill_on_empty_registry_returns_zero(tmp_path: Path) -> None:
    supervisor, reporter = _supervisor(tmp_path, RecordingRunner())

    assert await supervisor.kill(force=True) == 0
    assert "No running processes to kill." in reporter.messages("warning")


@pytest.mark.asyncio
async def test_history_records_teardown_state_once(tmp_path: Path) -> None:
    supervisor, _ = _supervisor(tmp_path, RecordingRunner())
    record = await _start(supervisor, _repo(tmp_path, "web"))

    await supervisor.stop_all()
    await _reap(record)

    history = supervisor.history()
    assert len(history) == 1
    assert history[0].state == ProcessState.STOPPED
