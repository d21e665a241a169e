"""Value types shared by the catalog, the resolution policies and the orchestrator."""

from dataclasses import dataclass
from enum import Enum


class ResourceKind(str, Enum):
    """Kinds of provisionable resources."""

    ACCOUNT = "account"
    ZONE = "zone"
    BUCKET = "bucket"
    DATABASE = "database"
    PROJECT = "project"


class ResolutionState(str, Enum):
    """Lifecycle of one resource kind's resolution."""

    UNRESOLVED = "unresolved"
    AWAITING_CHOICE = "awaiting_choice"
    RESOLVED = "resolved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ResourceEntry:
    """One existing resource as seen by a catalog query."""

    id: str
    name: str


@dataclass(frozen=True)
class ResourceListing:
    """Ordered snapshot of existing resources of one kind in one scope."""

    kind: ResourceKind
    entries: tuple[ResourceEntry, ...] = ()
    scope_id: str | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def find(self, id_or_name: str) -> ResourceEntry | None:
        """Look an entry up by id first, then by name."""
        for entry in self.entries:
            if entry.id == id_or_name:
                return entry
        for entry in self.entries:
            if entry.name == id_or_name:
                return entry
        return None


@dataclass(frozen=True)
class Reuse:
    """Use an existing resource."""

    id: str
    name: str | None = None


@dataclass(frozen=True)
class CreateNew:
    """Create a resource with the given name."""

    name: str


@dataclass(frozen=True)
class Skip:
    """Do not use a resource of this kind."""


ResolutionOutcome = Reuse | CreateNew | Skip


@dataclass(frozen=True)
class CreatedResource:
    """A cloud resource created during this run (kept for manual cleanup)."""

    kind: ResourceKind
    id: str
    name: str

    def describe(self) -> str:
        if self.id and self.id != self.name:
            return f"{self.kind.value} {self.name} ({self.id})"
        return f"{self.kind.value} {self.name}"
