"""Console reporting for runs, teardown and status output."""

from __future__ import annotations

import logging as py_logging
from dataclasses import dataclass

from rich.console import Console
from rich.text import Text

logger = py_logging.getLogger(__name__)

_LEVEL_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


@dataclass(frozen=True)
class ReportEvent:
    level: str
    repository: str
    message: str


class ConsoleReporter:
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)
        self.events: list[ReportEvent] = []

    def _emit(self, level: str, message: str, repository: str = "") -> None:
        self.events.append(ReportEvent(level=level, repository=repository, message=message))
        text = Text()
        if repository:
            text.append(f"{repository}: ", style="bold")
        text.append(message, style=_LEVEL_STYLES.get(level, ""))
        self.console.print(text)

    def info(self, message: str, repository: str = "") -> None:
        self._emit("info", message, repository)

    def success(self, message: str, repository: str = "") -> None:
        self._emit("success", message, repository)

    def warning(self, message: str, repository: str = "") -> None:
        self._emit("warning", message, repository)

    def error(self, message: str, repository: str = "") -> None:
        self._emit("error", message, repository)

    def detail(self, message: str) -> None:
        self.console.print(Text(message, style="dim"))

    def output(self, repository: str, line: str, *, stream: str) -> None:
        style = "red" if stream == "stderr" else "dim"
        text = Text(f"{repository}: ", style="bold")
        text.append(line, style=style)
        self.console.print(text)

    def messages(self, level: str | None = None) -> list[str]:
        return [event.message for event in self.events if level is None or event.level == level]
