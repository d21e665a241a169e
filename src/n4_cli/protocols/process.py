"""Process runner protocol for clone/install/build/deploy commands."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass
class ProcessResult:
    """Result from running a child process."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    """Protocol for running external commands to completion."""

    async def run(
        self,
        command: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> ProcessResult:
        """Run ``command`` and wait for it to exit.

        ``env`` entries are added on top of the current process environment.
        """
        ...
