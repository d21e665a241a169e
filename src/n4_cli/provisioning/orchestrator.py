"""Provisioning orchestrator.

Runs the resolution steps in dependency order and accumulates the
results into a single :class:`ProvisioningPlan`. Created cloud resources
are never rolled back; they are listed in ``plan.created`` so a failed run
can be cleaned up by hand.
"""

from dataclasses import dataclass
from typing import Any, Callable, Protocol

from n4_cli.config import Config, TemplateConfig
from n4_cli.exceptions import (
    ConfigError,
    N4Error,
    ProviderError,
    ProvisioningAbortedError,
    ResourceConflictError,
    ResourceError,
    ResourceNotFoundError,
)
from n4_cli.observability import (
    StepContext,
    Timer,
    bind_account,
    emit_counter,
    emit_timer,
    get_logger,
)
from n4_cli.protocols.prompts import PromptProvider
from n4_cli.providers.base import CloudflareApi
from n4_cli.providers.cloudflare import CloudflareClient
from n4_cli.providers.supabase import SupabaseClient
from n4_cli.provisioning.catalog import ResourceCatalog
from n4_cli.provisioning.models import (
    CreateNew,
    ResolutionOutcome,
    ResolutionState,
    ResourceEntry,
    ResourceKind,
    ResourceListing,
    Reuse,
)
from n4_cli.provisioning.plan import Intent, ProvisioningPlan
from n4_cli.provisioning.policy import (
    KindSpec,
    ProjectAction,
    ResolutionPolicy,
    account_spec,
    ask_conflict_action,
    ask_project_name,
    ask_unverified_action,
    bucket_spec,
    database_spec,
    zone_spec,
)
from n4_cli.provisioning.steps import (
    ProvisioningStep,
    get_provisioning_steps,
    validate_step_order,
)
from n4_cli.utils.validation import ensure_url_protocol, validate_domain, validate_project_name

logger = get_logger(__name__)

STEP_KINDS: dict[str, ResourceKind] = {
    "account": ResourceKind.ACCOUNT,
    "zone": ResourceKind.ZONE,
    "bucket": ResourceKind.BUCKET,
    "database": ResourceKind.DATABASE,
    "project": ResourceKind.PROJECT,
}


class SupabaseProbe(Protocol):
    async def probe(self) -> None: ...


ClientFactory = Callable[[str], CloudflareApi]
SupabaseFactory = Callable[[str, str], SupabaseProbe]


@dataclass
class ProvisioningEvent:
    """Event emitted while the orchestrator runs."""

    type: str  # "step_started", "step_completed", "step_skipped", "warning", "failed"
    step_id: str | None = None
    step_name: str | None = None
    step_number: int | None = None
    reason: str | None = None
    error: str | None = None


EventCallback = Callable[[ProvisioningEvent], None]


def build_project_payload(
    plan: ProvisioningPlan, name: str, template: TemplateConfig
) -> dict[str, Any]:
    """Build the Pages project creation payload.

    Bindings and variables for skipped resources are left out entirely
    rather than sent as empty values.
    """
    production: dict[str, Any] = {
        "compatibility_date": template.compatibility_date,
        "env_vars": {
            key: {"type": "plain_text", "value": value}
            for key, value in plan.to_env_vars().items()
        },
    }
    if plan.database_enabled:
        production["d1_databases"] = {"DB": {"id": plan.database_id}}
    if plan.storage_enabled:
        production["r2_buckets"] = {"R2_BUCKET": {"name": plan.bucket_name}}

    return {
        "name": name,
        "production_branch": template.production_branch,
        "build_config": {},
        "deployment_configs": {
            "preview": {},
            "production": production,
        },
    }


class ProvisioningOrchestrator:
    """Sequences resource resolution for one run.

    Handles:
    - Project basics and API token verification
    - Account, domain, R2 bucket (and its public URL) and D1 database
    - Supabase credential verification
    - Pages project verification or creation, with the conflict menu
    - Optional custom domain attachment

    The plan is owned by the orchestrator and stays readable after a
    failure so the caller can report ``plan.created``.
    """

    def __init__(
        self,
        intent: Intent,
        prompter: PromptProvider,
        config: Config | None = None,
        client_factory: ClientFactory | None = None,
        supabase_factory: SupabaseFactory | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            intent: Frozen user intent
            prompter: Prompt provider for interactive decisions
            config: Application configuration (defaults if omitted)
            client_factory: Builds the Cloudflare client from the API token
            supabase_factory: Builds the Supabase probe from URL and anon key
            on_event: Receives progress events
        """
        self.intent = intent
        self.prompter = prompter
        self.config = config or Config()
        self.plan = ProvisioningPlan()
        self.warnings: list[str] = []
        self._client_factory = client_factory or self._default_client
        self._supabase_factory = supabase_factory or self._default_supabase
        self._on_event = on_event
        self._client: CloudflareApi | None = None
        self._catalog: ResourceCatalog | None = None
        self._api_token: str | None = None
        self._finished: set[str] = set()

    def _default_client(self, api_token: str) -> CloudflareApi:
        return CloudflareClient.from_config(self.config.cloudflare, api_token)

    def _default_supabase(self, url: str, anon_key: str) -> SupabaseProbe:
        return SupabaseClient(url, anon_key, self.config.supabase.timeout_seconds)

    @property
    def api_token(self) -> str | None:
        """The verified API token (kept out of the plan so it is never serialized)."""
        return self._api_token

    @property
    def client(self) -> CloudflareApi:
        if self._client is None:
            raise RuntimeError("Cloudflare client is not available before the preamble step")
        return self._client

    @property
    def catalog(self) -> ResourceCatalog:
        if self._catalog is None:
            raise RuntimeError("Resource catalog is not available before the preamble step")
        return self._catalog

    def _emit(self, event: ProvisioningEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _warn(self, step_id: str, message: str, error: Exception | None = None) -> None:
        self.warnings.append(message)
        logger.warning(message, context={"step_id": step_id}, error=error)
        self._emit(ProvisioningEvent(type="warning", step_id=step_id, reason=message))

    async def run(self) -> ProvisioningPlan:
        """Run every applicable step in order.

        Returns:
            The completed plan

        Raises:
            N4Error: Any unrecoverable failure; ``self.plan`` keeps what was
                resolved and created so far
        """
        selection = get_provisioning_steps(self.intent)
        validate_step_order(selection.steps)

        for step in selection.skipped:
            self._skip_step(step, step.skip_reason or "disabled")

        for number, step in enumerate(selection.steps, start=1):
            self._emit(
                ProvisioningEvent(
                    type="step_started",
                    step_id=step.id,
                    step_name=step.name,
                    step_number=number,
                )
            )
            try:
                with StepContext(step.id), Timer() as timer:
                    await self._execute_step(step)
            except N4Error as e:
                kind = STEP_KINDS.get(step.id)
                if kind is not None:
                    self.plan.mark(kind, ResolutionState.FAILED)
                e.created = tuple(self.plan.created)
                logger.error(
                    "Provisioning step failed",
                    context={
                        "step_id": step.id,
                        "created": [c.describe() for c in self.plan.created],
                    },
                    error=e,
                )
                self._emit(
                    ProvisioningEvent(
                        type="failed", step_id=step.id, step_name=step.name, error=str(e)
                    )
                )
                raise

            self._finished.add(step.id)
            emit_timer("provisioning.step", timer.duration_ms, {"step": step.id})
            logger.info(
                "Provisioning step completed",
                context={"step_id": step.id},
                duration_ms=timer.duration_ms,
            )
            self._emit(
                ProvisioningEvent(type="step_completed", step_id=step.id, step_number=number)
            )

        return self.plan

    def _skip_step(self, step: ProvisioningStep, reason: str) -> None:
        kind = STEP_KINDS.get(step.id)
        if kind is not None:
            self.plan.mark(kind, ResolutionState.SKIPPED)
        self._finished.add(step.id)
        self._emit(
            ProvisioningEvent(
                type="step_skipped", step_id=step.id, step_name=step.name, reason=reason
            )
        )

    async def _execute_step(self, step: ProvisioningStep) -> None:
        """Execute a single provisioning step after checking its dependencies."""
        missing = [d for d in step.depends_on if d not in self._finished]
        if missing:
            raise RuntimeError(f"Step {step.id} cannot run before {', '.join(missing)}")

        if step.id == "preamble":
            await self._step_preamble()
        elif step.id == "account":
            await self._step_account()
        elif step.id == "zone":
            await self._step_zone()
        elif step.id == "bucket":
            await self._step_bucket()
        elif step.id == "bucket_public_url":
            await self._step_bucket_public_url()
        elif step.id == "database":
            await self._step_database()
        elif step.id == "supabase":
            await self._step_supabase()
        elif step.id == "project":
            await self._step_project()
        elif step.id == "custom_domain":
            await self._step_custom_domain()
        else:
            raise ValueError(f"Unknown provisioning step: {step.id}")

    async def _resolve(
        self, spec: KindSpec, listing: ResourceListing, selection: str | None
    ) -> ResolutionOutcome:
        self.plan.mark(spec.kind, ResolutionState.AWAITING_CHOICE)
        return await ResolutionPolicy(spec, self.prompter).resolve(listing, selection)

    @staticmethod
    def _verified(listing: ResourceListing, outcome: Reuse, label: str) -> ResourceEntry:
        entry = listing.find(outcome.id)
        if entry is None:
            raise ResourceNotFoundError(label, outcome.id, "not visible to this API token")
        return entry

    def _created(self, kind: ResourceKind, id: str, name: str) -> None:
        self.plan.record_created(kind, id, name)
        emit_counter("provisioning.resource_created", {"kind": kind.value})
        logger.info("Created resource", context={"kind": kind.value, "id": id, "name": name})

    async def _step_preamble(self) -> None:
        """Collect the project name, clone destination and API token."""
        template = self.config.template
        if self.intent.project_name:
            try:
                name = validate_project_name(self.intent.project_name)
            except ValueError as e:
                raise ConfigError(str(e)) from e
        else:
            name = await ask_project_name(self.prompter, template.default_project_name)

        destination = self.intent.destination or await self.prompter.ask_text(
            "Enter the destination path where you want the repo to be cloned:",
            default=f"./{name}",
        )
        self.plan.record_basics(name, destination or f"./{name}")

        token = self.intent.api_token or await self.prompter.ask_text(
            "Enter the API token for your Cloudflare account:", secret=True
        )
        if not token:
            raise ConfigError("A Cloudflare API token is required")

        client = self._client_factory(token)
        await client.verify_token()
        self._api_token = token
        self._client = client
        self._catalog = ResourceCatalog(client)

    async def _step_account(self) -> None:
        listing = await self.catalog.list(ResourceKind.ACCOUNT)
        outcome = await self._resolve(account_spec(), listing, self.intent.account_id)
        if not isinstance(outcome, Reuse):
            raise ResourceError(f"Unexpected account outcome: {outcome}")

        entry = self._verified(listing, outcome, "account")
        self.plan.record_account(entry.id, entry.name)
        bind_account(entry.id)

    async def _step_zone(self) -> None:
        account_id = self.plan.account_id
        listing = await self.catalog.list(ResourceKind.ZONE, account_id)
        outcome = await self._resolve(zone_spec(), listing, self.intent.zone_selection)

        if isinstance(outcome, Reuse):
            entry = self._verified(listing, outcome, "zone")
            self.plan.record_zone(entry.id, entry.name)
        elif isinstance(outcome, CreateNew):
            zone = await self.client.create_zone(account_id, outcome.name)
            self._created(ResourceKind.ZONE, zone.id, zone.name)
            self.plan.record_zone(zone.id, zone.name)
            self._warn(
                "zone",
                f"Point the nameservers of {zone.name} at Cloudflare before it becomes active",
            )
        else:
            self.plan.mark(ResourceKind.ZONE, ResolutionState.SKIPPED)
            logger.info("Continuing without a domain")

    async def _step_bucket(self) -> None:
        selection = self.intent.bucket_name
        if selection is None and self.plan.zone_id is None:
            proceed = await self.prompter.ask_confirm(
                "We advise against using an R2 bucket without a custom domain. "
                "Would you like to set up an R2 bucket anyway?",
                default=False,
            )
            if not proceed:
                self.plan.mark(ResourceKind.BUCKET, ResolutionState.SKIPPED)
                return

        account_id = self.plan.account_id
        listing = await self.catalog.list(ResourceKind.BUCKET, account_id)
        outcome = await self._resolve(bucket_spec(self.plan.project_name), listing, selection)

        if isinstance(outcome, Reuse):
            entry = self._verified(listing, outcome, "bucket")
            self.plan.record_bucket(entry.name)
        elif isinstance(outcome, CreateNew):
            bucket = await self.client.create_bucket(account_id, outcome.name)
            self._created(ResourceKind.BUCKET, bucket.name, bucket.name)
            self.plan.record_bucket(bucket.name)
        else:
            self.plan.mark(ResourceKind.BUCKET, ResolutionState.SKIPPED)
            logger.info("Continuing without an R2 bucket")

    async def _step_bucket_public_url(self) -> None:
        """Find the public URL of the selected bucket through the selected zone."""
        if not self.plan.is_decided(ResourceKind.ZONE):
            raise RuntimeError("Bucket public URL resolution requires a zone decision")
        if not self.plan.storage_enabled:
            return

        if self.intent.bucket_public_url:
            self.plan.record_bucket_public_url(ensure_url_protocol(self.intent.bucket_public_url))
            return
        if self.plan.zone_id is None:
            return

        zone = self.plan.zone_name
        try:
            records = await self.catalog.find_public_bucket_records(self.plan.zone_id)
        except ProviderError as e:
            self._warn(
                "bucket_public_url",
                "Your API token could not read DNS records; enter the bucket URL manually",
                error=e,
            )
            records = []

        if not records:
            has_other = await self.prompter.ask_confirm(
                f"We found no public URL for your R2 bucket on {zone}. "
                "Does your bucket have a public URL on another domain?",
                default=True,
            )
            if has_other:
                await self._ask_public_url()
            else:
                await self._confirm_without_public_url()
        elif len(records) == 1:
            found = records[0].name
            if await self.prompter.ask_confirm(
                f"We found {found} serving your R2 bucket on {zone}. Use it in this project?",
                default=True,
            ):
                self.plan.record_bucket_public_url(ensure_url_protocol(found))
            elif await self.prompter.ask_confirm(
                "Do you have another public URL for your R2 bucket?", default=False
            ):
                await self._ask_public_url()
            else:
                await self._confirm_without_public_url()
        else:
            names = ", ".join(r.name for r in records)
            url = await self.prompter.ask_text(
                f"Several DNS records on {zone} point at R2 ({names}). "
                "Enter the public URL for your R2 bucket (leave empty for none):",
                default="",
            )
            if url.strip():
                self.plan.record_bucket_public_url(ensure_url_protocol(url))

        if self.plan.bucket_public_url:
            logger.info("Using R2 public URL", context={"url": self.plan.bucket_public_url})

    async def _ask_public_url(self) -> None:
        url = await self.prompter.ask_text("Enter the public URL for your R2 bucket:")
        if url.strip():
            self.plan.record_bucket_public_url(ensure_url_protocol(url))
        else:
            await self._confirm_without_public_url()

    async def _confirm_without_public_url(self) -> None:
        if not await self.prompter.ask_confirm(
            "Do you want to continue without a public URL for your R2 bucket? "
            "You can add one in the Cloudflare dashboard later.",
            default=True,
        ):
            raise ProvisioningAbortedError("Stopped: no public URL for the R2 bucket")

    async def _step_database(self) -> None:
        account_id = self.plan.account_id
        listing = await self.catalog.list(ResourceKind.DATABASE, account_id)
        outcome = await self._resolve(
            database_spec(self.plan.project_name), listing, self.intent.database_selection
        )

        if isinstance(outcome, Reuse):
            entry = self._verified(listing, outcome, "database")
            self.plan.record_database(entry.id, entry.name)
        elif isinstance(outcome, CreateNew):
            database = await self.client.create_database(account_id, outcome.name)
            self._created(ResourceKind.DATABASE, database.id, database.name)
            self.plan.record_database(database.id, database.name)
        else:
            self.plan.mark(ResourceKind.DATABASE, ResolutionState.SKIPPED)
            logger.info("Continuing without a D1 database")

    async def _step_supabase(self) -> None:
        url = self.intent.supabase_url or await self.prompter.ask_text(
            "Enter the Supabase project URL:"
        )
        anon_key = self.intent.supabase_anon_key or await self.prompter.ask_text(
            "Enter the Supabase project anon key:", secret=True
        )
        if not url or not anon_key:
            raise ConfigError("A Supabase project URL and anon key are required")

        url = ensure_url_protocol(url).rstrip("/")
        await self._supabase_factory(url, anon_key).probe()
        self.plan.record_supabase(url, anon_key)

    async def _step_project(self) -> None:
        existing = self.intent.existing_project
        if not existing:
            await self._create_project(self.plan.project_name)
            return

        try:
            info = await self.client.get_pages_project(self.plan.account_id, existing)
        except (ProviderError, ResourceNotFoundError) as e:
            self._warn("project", f"Could not verify ownership of Pages project {existing}", e)
            action = await ask_unverified_action(self.prompter, existing)
            if action is not ProjectAction.CREATE_NEW:
                raise ProvisioningAbortedError(
                    f"Stopped: Pages project {existing} could not be verified"
                ) from e
            name = await ask_project_name(self.prompter, default=f"{existing}-2")
            await self._create_project(name)
            return

        self.plan.record_project(info.name or existing, info.subdomain)

    async def _create_project(self, name: str) -> None:
        """Create the Pages project, looping through the conflict menu on 409."""
        account_id = self.plan.account_id
        while True:
            payload = build_project_payload(self.plan, name, self.config.template)
            try:
                info = await self.client.create_pages_project(account_id, payload)
            except ResourceConflictError:
                action = await ask_conflict_action(self.prompter, name)
                if action is ProjectAction.USE_EXISTING:
                    existing = await self.client.get_pages_project(account_id, name)
                    self.plan.record_project(existing.name or name, existing.subdomain)
                    self._warn(
                        "project",
                        f"Using existing Pages project {existing.name or name}; "
                        "its bindings were not changed",
                    )
                    return
                if action is ProjectAction.CREATE_NEW:
                    self.plan.reset_project()
                    name = await ask_project_name(self.prompter, default=f"{name}-2")
                    continue
                raise ProvisioningAbortedError(f"Stopped: Pages project {name} already exists")

            project_name = info.name or name
            self._created(ResourceKind.PROJECT, project_name, project_name)
            self.plan.record_project(project_name, info.subdomain)
            return

    async def _step_custom_domain(self) -> None:
        domain = self.intent.custom_domain
        if domain is None:
            if self.plan.zone_name is None:
                return
            if not await self.prompter.ask_confirm(
                "Do you want to use a custom domain with your project?", default=False
            ):
                return
            domain = await self.prompter.ask_text(
                "Enter the domain you want to use:", default=f"app.{self.plan.zone_name}"
            )

        try:
            domain = validate_domain(domain)
        except ValueError as e:
            self._warn("custom_domain", str(e))
            return

        try:
            await self.client.add_pages_domain(
                self.plan.account_id, self.plan.pages_project, domain
            )
        except (ProviderError, ResourceError) as e:
            self._warn("custom_domain", f"Could not add custom domain {domain}: {e}", e)
            return

        self.plan.record_custom_domain(domain)
