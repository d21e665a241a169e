"""Protocol interfaces for the external collaborators of the core."""

from n4_cli.protocols.file_patcher import FilePatcher
from n4_cli.protocols.process import ProcessResult, ProcessRunner
from n4_cli.protocols.prompts import Choice, PromptProvider

__all__ = [
    "Choice",
    "FilePatcher",
    "ProcessResult",
    "ProcessRunner",
    "PromptProvider",
]
