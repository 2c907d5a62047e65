"""Confirmation and selection providers.

The controller never talks to a terminal directly; it asks a Prompter.
ClickPrompter is the interactive one, AutoPrompter answers from flags.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

import click


class Prompter(Protocol):
    """Anything that can answer yes/no and pick from a numbered list."""

    def confirm(self, message: str) -> bool:
        ...

    def choose(self, message: str, options: Sequence[str]) -> int:
        """Return a 1-based index into options."""
        ...


class ClickPrompter:
    """Interactive prompts on the controlling terminal."""

    def confirm(self, message: str) -> bool:
        return click.confirm(message, default=False)

    def choose(self, message: str, options: Sequence[str]) -> int:
        for i, option in enumerate(options, start=1):
            click.echo(f"  {i:>3}) {option}")
        return click.prompt(message, type=click.IntRange(1, len(options)))


class AutoPrompter:
    """Non-interactive answers, for --yes / --select and for tests.

    Args:
        assume_yes: Answer to every confirmation.
        choice: 1-based selection. None falls back to the first option.
    """

    def __init__(self, assume_yes: bool = True, choice: Optional[int] = None):
        self.assume_yes = assume_yes
        self.choice = choice
        self.asked: list[str] = []

    def confirm(self, message: str) -> bool:
        self.asked.append(message)
        return self.assume_yes

    def choose(self, message: str, options: Sequence[str]) -> int:
        self.asked.append(message)
        return self.choice if self.choice is not None else 1
