"""Prompt provider protocol for interactive resolution."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Choice:
    """One entry of a choice prompt."""

    title: str
    value: str


class PromptProvider(Protocol):
    """Protocol for asking the user questions (terminal prompts, scripted answers)."""

    async def ask_choice(self, message: str, choices: list[Choice]) -> str:
        """Ask the user to pick one of ``choices`` and return its value."""
        ...

    async def ask_text(
        self,
        message: str,
        default: str | None = None,
        secret: bool = False,
    ) -> str:
        """Ask for free text; ``secret`` hides the input."""
        ...

    async def ask_confirm(self, message: str, default: bool = True) -> bool:
        """Ask a yes/no question."""
        ...
