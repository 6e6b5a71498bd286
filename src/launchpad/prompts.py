"""Interactive selection between labeled dev alternatives."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.prompt import Prompt
from rich.text import Text

from launchpad.commands.overrides import LabeledCommand


def prompt_alternative(
    repository: str,
    choices: Sequence[LabeledCommand],
    *,
    console: Console | None = None,
) -> int:
    """Ask which alternative to run and return its zero-based index."""
    console = console or Console(highlight=False)
    console.print(Text(f"{repository} has multiple dev options:", style="bold"))
    for number, choice in enumerate(choices, start=1):
        line = Text(f"  {number}. ", style="bold")
        line.append(choice.label)
        line.append(f" ({choice.kind.value})", style="dim")
        console.print(line)
    answer = Prompt.ask(
        "Choose",
        choices=[str(number) for number in range(1, len(choices) + 1)],
        default="1",
        console=console,
    )
    return int(answer) - 1
