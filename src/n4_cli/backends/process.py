"""Subprocess-based process runner."""

import asyncio
import os
from pathlib import Path

from n4_cli.observability import get_logger
from n4_cli.protocols.process import ProcessResult

logger = get_logger(__name__)


class SubprocessRunner:
    """Runs commands as child processes and captures their output.

    Extra environment variables are merged over the current environment and
    never written anywhere else.
    """

    def __init__(self, timeout_seconds: float | None = None) -> None:
        """Initialize the runner.

        Args:
            timeout_seconds: Kill the child after this long (``None`` waits forever)
        """
        self._timeout = timeout_seconds

    async def run(
        self,
        command: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> ProcessResult:
        """Run ``command`` to completion."""
        child_env = {**os.environ, **env} if env else None
        logger.debug("Running command", context={"command": command[0], "cwd": str(cwd or ".")})

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                env=child_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return ProcessResult(
                stdout="",
                stderr=f"Command not found: {command[0]}",
                exit_code=127,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ProcessResult(
                stdout="",
                stderr=f"Command timed out after {self._timeout} seconds",
                exit_code=-1,
            )

        return ProcessResult(
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
            exit_code=proc.returncode or 0,
        )
