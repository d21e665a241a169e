"""Local filesystem file patcher."""

import re
from pathlib import Path


class LocalFilePatcher:
    """Reads and rewrites text files under a root directory.

    Used to materialize configuration into a freshly cloned template.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the patcher.

        Args:
            root: Directory every relative path is resolved against
        """
        self.root = Path(root)

    def _get_path(self, path: str | Path) -> Path:
        """Resolve a relative path, rejecting anything outside the root."""
        relative = str(path)
        if "\x00" in relative or Path(relative).is_absolute():
            raise ValueError(f"Invalid path: {path}")

        target = (self.root / relative).resolve()
        try:
            target.relative_to(self.root.resolve())
        except ValueError:
            raise ValueError(f"Invalid path: {path} escapes {self.root}")
        return target

    def read(self, path: str | Path) -> str:
        return self._get_path(path).read_text(encoding="utf-8")

    def write(self, path: str | Path, content: str) -> None:
        target = self._get_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def substitute(self, path: str | Path, old: str, new: str) -> int:
        """Replace every literal occurrence of ``old`` and return the count."""
        content = self.read(path)
        count = content.count(old)
        if count:
            self.write(path, content.replace(old, new))
        return count

    def regex_substitute(self, path: str | Path, pattern: str, replacement: str) -> int:
        """Replace every match of ``pattern`` (multiline mode) and return the count."""
        content = self.read(path)
        updated, count = re.subn(pattern, replacement, content, flags=re.MULTILINE)
        if count:
            self.write(path, updated)
        return count

    def truncate(self, path: str | Path) -> None:
        target = self._get_path(path)
        if not target.exists():
            raise FileNotFoundError(f"No such file: {path}")
        target.write_text("", encoding="utf-8")
