"""Local implementations of the file patcher and process runner protocols."""

from n4_cli.backends.patcher import LocalFilePatcher
from n4_cli.backends.process import SubprocessRunner

__all__ = ["LocalFilePatcher", "SubprocessRunner"]
