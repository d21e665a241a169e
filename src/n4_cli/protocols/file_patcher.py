"""File patcher protocol for editing the cloned template."""

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class FilePatcher(Protocol):
    """Protocol for reading and rewriting UTF-8 text files.

    Paths are relative to the patcher's root directory.
    """

    def read(self, path: str | Path) -> str:
        """Read a file."""
        ...

    def write(self, path: str | Path, content: str) -> None:
        """Write (create or replace) a file."""
        ...

    def substitute(self, path: str | Path, old: str, new: str) -> int:
        """Replace every literal occurrence of ``old``; return the count."""
        ...

    def regex_substitute(self, path: str | Path, pattern: str, replacement: str) -> int:
        """Replace every match of ``pattern``; return the count."""
        ...

    def truncate(self, path: str | Path) -> None:
        """Empty an existing file."""
        ...
