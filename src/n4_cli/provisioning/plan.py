"""User intent and the provisioning plan accumulated across a run."""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from n4_cli.config import Config
from n4_cli.provisioning.models import CreatedResource, ResolutionState, ResourceKind


@dataclass(frozen=True)
class Intent:
    """Read-only snapshot of what the user asked for before the run started.

    A ``None`` field means "not specified"; the matching resolution step
    then asks the user.
    """

    project_name: str | None = None
    destination: str | None = None
    api_token: str | None = None
    account_id: str | None = None
    zone_name: str | None = None
    zone_id: str | None = None
    use_bucket: bool = True
    bucket_name: str | None = None
    bucket_public_url: str | None = None
    use_database: bool = True
    database_id: str | None = None
    database_name: str | None = None
    existing_project: str | None = None
    custom_domain: str | None = None
    supabase_url: str | None = None
    supabase_anon_key: str | None = None

    @property
    def zone_selection(self) -> str | None:
        return self.zone_id or self.zone_name

    @property
    def needs_zone(self) -> bool:
        """A domain is only used by the R2 public URL and the custom domain."""
        return self.use_bucket or self.custom_domain is not None or self.zone_selection is not None

    @property
    def database_selection(self) -> str | None:
        return self.database_id or self.database_name

    @classmethod
    def from_sources(
        cls,
        flags: Mapping[str, Any] | None = None,
        config: Config | None = None,
    ) -> "Intent":
        """Merge CLI flags over config-file values.

        Args:
            flags: Parsed flag values keyed by field name; ``None`` values
                and unknown keys are ignored
            config: Loaded configuration supplying credential defaults

        Returns:
            Frozen intent
        """
        values: dict[str, Any] = {}
        if config is not None:
            values.update(
                {
                    "api_token": config.cloudflare.api_token,
                    "account_id": config.cloudflare.account_id,
                    "supabase_url": config.supabase.url,
                    "supabase_anon_key": config.supabase.anon_key,
                }
            )

        known = {f.name for f in fields(cls)}
        for key, value in (flags or {}).items():
            if key in known and value is not None:
                values[key] = value

        return cls(**{k: v for k, v in values.items() if v is not None})


@dataclass
class ProvisioningPlan:
    """Resolved resource selections for the current run.

    Owned and mutated only by the orchestrator. Fields are written through
    the ``record_*`` methods once the matching resolution step has
    succeeded; ``reset_project`` is the only way back.
    """

    project_name: str | None = None
    destination: str | None = None
    account_id: str | None = None
    account_name: str | None = None
    zone_id: str | None = None
    zone_name: str | None = None
    bucket_name: str | None = None
    bucket_public_url: str | None = None
    database_id: str | None = None
    database_name: str | None = None
    pages_project: str | None = None
    pages_subdomain: str | None = None
    custom_domain: str | None = None
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    states: dict[ResourceKind, ResolutionState] = field(default_factory=dict)
    created: list[CreatedResource] = field(default_factory=list)

    @property
    def storage_enabled(self) -> bool:
        return self.bucket_name is not None

    @property
    def database_enabled(self) -> bool:
        return self.database_id is not None

    @property
    def public_address(self) -> str | None:
        """Where the deployed site is reachable, preferring the custom domain."""
        if self.custom_domain:
            return self.custom_domain
        if self.pages_subdomain:
            return self.pages_subdomain
        if self.pages_project:
            return f"{self.pages_project}.pages.dev"
        return None

    def state_of(self, kind: ResourceKind) -> ResolutionState:
        return self.states.get(kind, ResolutionState.UNRESOLVED)

    def is_decided(self, kind: ResourceKind) -> bool:
        """True once a kind reached a terminal state (resolved or skipped)."""
        return self.state_of(kind) in (ResolutionState.RESOLVED, ResolutionState.SKIPPED)

    def mark(self, kind: ResourceKind, state: ResolutionState) -> None:
        self.states[kind] = state

    def record_basics(self, project_name: str, destination: str) -> None:
        self.project_name = project_name
        self.destination = destination

    def record_account(self, account_id: str, name: str | None = None) -> None:
        self.account_id = account_id
        self.account_name = name or account_id
        self.mark(ResourceKind.ACCOUNT, ResolutionState.RESOLVED)

    def record_zone(self, zone_id: str, name: str) -> None:
        self.zone_id = zone_id
        self.zone_name = name
        self.mark(ResourceKind.ZONE, ResolutionState.RESOLVED)

    def record_bucket(self, name: str) -> None:
        self.bucket_name = name
        self.mark(ResourceKind.BUCKET, ResolutionState.RESOLVED)

    def record_bucket_public_url(self, url: str) -> None:
        if self.bucket_name is None:
            raise ValueError("Cannot record a public URL without a bucket")
        self.bucket_public_url = url

    def record_database(self, database_id: str, name: str) -> None:
        self.database_id = database_id
        self.database_name = name
        self.mark(ResourceKind.DATABASE, ResolutionState.RESOLVED)

    def record_project(self, name: str, subdomain: str | None = None) -> None:
        self.pages_project = name
        self.project_name = name
        self.pages_subdomain = subdomain
        self.mark(ResourceKind.PROJECT, ResolutionState.RESOLVED)

    def record_supabase(self, url: str, anon_key: str) -> None:
        self.supabase_url = url
        self.supabase_anon_key = anon_key

    def record_custom_domain(self, domain: str) -> None:
        if self.pages_project is None:
            raise ValueError("Cannot attach a custom domain without a Pages project")
        self.custom_domain = domain

    def reset_project(self) -> None:
        """Forget the project selection so it can be resolved again."""
        self.pages_project = None
        self.pages_subdomain = None
        self.mark(ResourceKind.PROJECT, ResolutionState.UNRESOLVED)

    def record_created(self, kind: ResourceKind, id: str, name: str) -> None:
        self.created.append(CreatedResource(kind=kind, id=id, name=name))

    def to_env_vars(self) -> dict[str, str]:
        """Runtime variables for the Pages deployment, omitting unset ones."""
        env: dict[str, str] = {}
        if self.supabase_url:
            env["SUPABASE_URL"] = self.supabase_url
        if self.supabase_anon_key:
            env["SUPABASE_ANON_KEY"] = self.supabase_anon_key
        if self.storage_enabled and self.bucket_public_url:
            env["R2_PUBLIC_URL"] = self.bucket_public_url
        return env

    def to_dict(self) -> dict[str, Any]:
        """Selections, states and the created ledger for the completion log.

        Credentials are left out.
        """
        return {
            "project_name": self.project_name,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "zone": self.zone_name,
            "bucket": self.bucket_name,
            "bucket_public_url": self.bucket_public_url,
            "database": self.database_name,
            "database_id": self.database_id,
            "pages_project": self.pages_project,
            "pages_subdomain": self.pages_subdomain,
            "custom_domain": self.custom_domain,
            "states": {k.value: v.value for k, v in self.states.items()},
            "created": [c.describe() for c in self.created],
        }
