"""Resolution policies: decide reuse / create / skip for one resource kind.

Every kind shares the same decision tree:

1. A selection supplied by flags short-circuits to ``Reuse`` with no prompt.
2. No existing resources: offer to create one, otherwise skip (or fail
   when the kind cannot be skipped).
3. Exactly one: confirm it; declining falls through to rule 2.
4. Several: pick one, or the synthetic "create new" / "don't use" entries.

Kind-specific copy and switches live in :class:`KindSpec`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from n4_cli.exceptions import NoUsableResourceError
from n4_cli.observability import get_logger
from n4_cli.protocols.prompts import Choice, PromptProvider
from n4_cli.provisioning.models import (
    CreateNew,
    ResolutionOutcome,
    ResolutionState,
    ResourceEntry,
    ResourceKind,
    ResourceListing,
    Reuse,
    Skip,
)
from n4_cli.utils.validation import (
    validate_bucket_name,
    validate_domain,
    validate_project_name,
)

logger = get_logger(__name__)

CREATE_NEW_CHOICE = "__create_new__"
SKIP_CHOICE = "__skip__"


@dataclass(frozen=True)
class KindSpec:
    """Copy, defaults and switches for one resource kind."""

    kind: ResourceKind
    label: str
    creatable: bool
    skippable: bool
    default_name: str | None = None
    create_default: bool = True
    create_first: bool = False
    validate_name: Callable[[str], str] | None = None

    @property
    def empty_message(self) -> str:
        return f"No {self.label}s were found in your account. Create one for this project?"

    @property
    def create_instead_message(self) -> str:
        return f"Create a new {self.label} for this project instead?"

    def use_one_message(self, entry: ResourceEntry) -> str:
        return f"Do you want to use your {entry.name} {self.label}?"

    @property
    def choice_message(self) -> str:
        return f"Select the {self.label} you want to use:"

    @property
    def name_message(self) -> str:
        return f"Enter the name of your new {self.label}:"

    @property
    def create_title(self) -> str:
        return f"Create a new {self.label}"

    @property
    def skip_title(self) -> str:
        return f"Don't use a {self.label} for this project"


def account_spec() -> KindSpec:
    return KindSpec(
        kind=ResourceKind.ACCOUNT,
        label="Cloudflare account",
        creatable=False,
        skippable=False,
    )


def zone_spec() -> KindSpec:
    return KindSpec(
        kind=ResourceKind.ZONE,
        label="domain",
        creatable=True,
        skippable=True,
        create_default=False,
        validate_name=validate_domain,
    )


def bucket_spec(project_name: str) -> KindSpec:
    return KindSpec(
        kind=ResourceKind.BUCKET,
        label="R2 bucket",
        creatable=True,
        skippable=True,
        default_name=f"{project_name}-bucket",
        create_default=False,
        validate_name=validate_bucket_name,
    )


def database_spec(project_name: str) -> KindSpec:
    return KindSpec(
        kind=ResourceKind.DATABASE,
        label="D1 database",
        creatable=True,
        skippable=True,
        default_name=f"{project_name}-database",
        create_first=True,
    )


class ResolutionPolicy:
    """Runs the decision tree for one resource kind.

    A policy instance resolves once; its ``state`` and ``transitions``
    expose the path taken (``UNRESOLVED`` -> ``AWAITING_CHOICE`` ->
    ``RESOLVED`` | ``SKIPPED`` | ``FAILED``).
    """

    def __init__(self, spec: KindSpec, prompter: PromptProvider) -> None:
        self.spec = spec
        self.prompter = prompter
        self.state = ResolutionState.UNRESOLVED
        self.transitions: list[ResolutionState] = [ResolutionState.UNRESOLVED]

    def _enter(self, state: ResolutionState) -> None:
        if self.state is not state:
            self.state = state
            self.transitions.append(state)

    async def resolve(
        self,
        listing: ResourceListing,
        selection: str | None = None,
    ) -> ResolutionOutcome:
        """Decide what to do for this kind.

        Args:
            listing: Current existing resources of the kind
            selection: Id or name supplied by flags, if any

        Returns:
            ``Reuse``, ``CreateNew`` or ``Skip``

        Raises:
            NoUsableResourceError: If nothing can be used and the kind
                cannot be skipped
            RuntimeError: If the policy already resolved
        """
        if self.state is not ResolutionState.UNRESOLVED:
            raise RuntimeError(f"{self.spec.label} resolution already ran")

        try:
            if selection:
                entry = listing.find(selection)
                # Existence is verified by the orchestrator
                outcome: ResolutionOutcome = (
                    Reuse(entry.id, entry.name) if entry else Reuse(selection)
                )
            elif listing.is_empty:
                outcome = await self._resolve_empty(self.spec.empty_message)
            elif len(listing) == 1:
                outcome = await self._resolve_single(listing.entries[0])
            else:
                outcome = await self._resolve_many(listing)
        except NoUsableResourceError:
            self._enter(ResolutionState.FAILED)
            raise

        self._enter(
            ResolutionState.SKIPPED if isinstance(outcome, Skip) else ResolutionState.RESOLVED
        )
        logger.info(
            "Resolved resource kind",
            context={"kind": self.spec.kind.value, "outcome": type(outcome).__name__},
        )
        return outcome

    async def _resolve_empty(self, message: str) -> ResolutionOutcome:
        if not self.spec.creatable:
            if self.spec.skippable:
                return Skip()
            raise NoUsableResourceError(
                self.spec.label, f"there are no {self.spec.label}s available to this credential"
            )

        self._enter(ResolutionState.AWAITING_CHOICE)
        if await self.prompter.ask_confirm(message, default=self.spec.create_default):
            return CreateNew(await self.ask_name())
        if self.spec.skippable:
            return Skip()
        raise NoUsableResourceError(self.spec.label, "creation was declined")

    async def _resolve_single(self, entry: ResourceEntry) -> ResolutionOutcome:
        self._enter(ResolutionState.AWAITING_CHOICE)
        if await self.prompter.ask_confirm(self.spec.use_one_message(entry), default=True):
            return Reuse(entry.id, entry.name)

        if not self.spec.creatable and not self.spec.skippable:
            raise NoUsableResourceError(
                self.spec.label, f"there are no other {self.spec.label}s available"
            )
        return await self._resolve_empty(self.spec.create_instead_message)

    async def _resolve_many(self, listing: ResourceListing) -> ResolutionOutcome:
        self._enter(ResolutionState.AWAITING_CHOICE)
        choices = [Choice(title=e.name, value=e.id) for e in listing]
        if self.spec.creatable:
            create = Choice(title=self.spec.create_title, value=CREATE_NEW_CHOICE)
            if self.spec.create_first:
                choices.insert(0, create)
            else:
                choices.append(create)
        if self.spec.skippable:
            choices.append(Choice(title=self.spec.skip_title, value=SKIP_CHOICE))

        selected = await self.prompter.ask_choice(self.spec.choice_message, choices)
        if selected == CREATE_NEW_CHOICE:
            return CreateNew(await self.ask_name())
        if selected == SKIP_CHOICE:
            return Skip()

        entry = listing.find(selected)
        if entry is None:
            raise ValueError(f"Unknown {self.spec.label} selected: {selected}")
        return Reuse(entry.id, entry.name)

    async def ask_name(self) -> str:
        """Prompt for a new resource name until it validates."""
        message = self.spec.name_message
        while True:
            name = (await self.prompter.ask_text(message, default=self.spec.default_name)).strip()
            if not name and self.spec.default_name:
                name = self.spec.default_name
            if self.spec.validate_name is None:
                if name:
                    return name
                message = f"A name is required. {self.spec.name_message}"
                continue
            try:
                return self.spec.validate_name(name)
            except ValueError as e:
                message = f"{e}. {self.spec.name_message}"


class ProjectAction(str, Enum):
    """Choices offered when the hosting project cannot be used as requested."""

    USE_EXISTING = "use_existing"
    CREATE_NEW = "create_new"
    EXIT = "exit"


async def ask_conflict_action(prompter: PromptProvider, name: str) -> ProjectAction:
    """Sub-menu for a 409 on project creation."""
    selected = await prompter.ask_choice(
        f"A Pages project named {name} already exists, what do you want to do?",
        [
            Choice(title="Use existing project", value=ProjectAction.USE_EXISTING.value),
            Choice(
                title="Create new project with a different name",
                value=ProjectAction.CREATE_NEW.value,
            ),
            Choice(title="Exit", value=ProjectAction.EXIT.value),
        ],
    )
    return ProjectAction(selected)


async def ask_unverified_action(prompter: PromptProvider, name: str) -> ProjectAction:
    """Menu for an existing project that could not be read with this credential."""
    selected = await prompter.ask_choice(
        f"Could not verify ownership of Pages project {name}. Do you want to continue?",
        [
            Choice(
                title="Create new project with a different name",
                value=ProjectAction.CREATE_NEW.value,
            ),
            Choice(title="Exit", value=ProjectAction.EXIT.value),
        ],
    )
    return ProjectAction(selected)


async def ask_project_name(
    prompter: PromptProvider,
    default: str,
    message: str = "Enter the name of your project:",
) -> str:
    """Prompt for a Pages project name until it validates."""
    prompt = message
    while True:
        name = (await prompter.ask_text(prompt, default=default)).strip() or default
        try:
            return validate_project_name(name)
        except ValueError as e:
            prompt = f"{e}. {message}"
