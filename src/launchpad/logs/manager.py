"""Per-run log files: naming, lookup, rendering and follow mode."""

from __future__ import annotations

import asyncio
import logging as py_logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.text import Text

logger = py_logging.getLogger(__name__)

STDOUT_TAG = "[STDOUT] "
STDERR_TAG = "[STDERR] "
DEFAULT_POLL_INTERVAL = 0.25

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_TIMESTAMP = re.compile(r"-(\d+)\.log$")
_COMMAND_AND_TIMESTAMP = re.compile(r".+-\d+\.log")


def _safe(value: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", value).strip("-")
    return cleaned or "default"


def log_file_name(repository: str, command: str, epoch_millis: int) -> str:
    return f"{_safe(repository)}-{_safe(command)}-{epoch_millis}.log"


def log_file_timestamp(path: Path) -> int:
    match = _TIMESTAMP.search(path.name)
    return int(match.group(1)) if match else 0


@dataclass(frozen=True)
class LogLine:
    text: str
    stream: str = "stdout"


def parse_line(raw: str) -> LogLine:
    line = raw.rstrip("\r\n")
    for tag, stream in ((STDERR_TAG, "stderr"), (STDOUT_TAG, "stdout")):
        if line.startswith(tag):
            return LogLine(text=line[len(tag) :], stream=stream)
        if line == tag.rstrip():
            return LogLine(text="", stream=stream)
    return LogLine(text=line)


class LogManager:
    def __init__(
        self,
        log_dir: str | Path,
        *,
        console: Console | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.console = console or Console(highlight=False)
        self.poll_interval = poll_interval

    def find_log_files(self, repository: str, *, known_repositories: Iterable[str] = ()) -> list[Path]:
        """Return run logs named ``<repository>-<command>-<millis>.log``.

        Names are only separated by dashes, so a file for a longer sibling
        such as ``api-gateway`` also starts with ``api-``. Files claimed by
        one of ``known_repositories`` with a longer matching name are skipped.
        """
        prefix = f"{_safe(repository)}-"
        shadowing = {
            f"{_safe(name)}-"
            for name in known_repositories
            if _safe(name) != _safe(repository) and _safe(name).startswith(prefix)
        }
        try:
            entries = list(self.log_dir.iterdir())
        except OSError as exc:
            logger.debug("Log directory unreadable path=%s error=%s", self.log_dir, exc)
            return []
        return [
            entry
            for entry in entries
            if entry.name.startswith(prefix)
            and _COMMAND_AND_TIMESTAMP.fullmatch(entry.name[len(prefix) :])
            and not any(entry.name.startswith(other) for other in shadowing)
            and entry.is_file()
        ]

    def latest_log_file(self, repository: str, *, known_repositories: Iterable[str] = ()) -> Path | None:
        files = self.find_log_files(repository, known_repositories=known_repositories)
        if not files:
            return None
        return max(files, key=log_file_timestamp)

    def render(self, raw: str) -> Text:
        line = parse_line(raw)
        if line.stream == "stderr":
            return Text(line.text, style="red")
        return Text(line.text)

    def _print(self, raw: str) -> None:
        self.console.print(self.render(raw))

    async def show(
        self,
        repository: str,
        *,
        follow: bool = False,
        lines: int | None = None,
        stop: asyncio.Event | None = None,
        known_repositories: Iterable[str] = (),
    ) -> bool:
        path = self.latest_log_file(repository, known_repositories=known_repositories)
        if path is None:
            self.console.print(Text(f"No logs found for {repository}", style="yellow"))
            return False

        self.console.print(Text(f"Logs for {repository} ({path.name})", style="cyan"))
        if follow:
            await self._follow(path, lines=lines, stop=stop)
            return True

        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Log file unreadable path=%s error=%s", path, exc)
            self.console.print(Text(f"Failed to read {path}: {exc}", style="red"))
            return False
        for raw in _tail(content.splitlines(), lines):
            self._print(raw)
        return True

    async def _follow(self, path: Path, *, lines: int | None, stop: asyncio.Event | None) -> None:
        self.console.print(Text("Following logs (Ctrl+C to stop)...", style="dim"))
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            existing, pending = _split_complete(handle.read())
            for raw in _tail(existing, lines):
                self._print(raw)
            try:
                while stop is None or not stop.is_set():
                    chunk = handle.read()
                    if not chunk:
                        await asyncio.sleep(self.poll_interval)
                        continue
                    complete, pending = _split_complete(pending + chunk)
                    for raw in complete:
                        self._print(raw)
            finally:
                if pending:
                    self._print(pending)
        self.console.print(Text("Stopped following logs.", style="yellow"))


def _split_complete(text: str) -> tuple[list[str], str]:
    *complete, pending = text.split("\n")
    return complete, pending


def _tail(items: list[str], lines: int | None) -> list[str]:
    if lines is None:
        return items
    if lines <= 0:
        return []
    return items[-lines:]
