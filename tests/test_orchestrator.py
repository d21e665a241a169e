"""Tests for the provisioning orchestrator."""

import pytest

from n4_cli.config import TemplateConfig
from n4_cli.exceptions import (
    NoUsableResourceError,
    ProviderUnauthorizedError,
    ProviderUnavailableError,
    ProvisioningAbortedError,
    ResourceNotFoundError,
)
from n4_cli.providers.base import (
    BucketInfo,
    DatabaseInfo,
    DnsRecordInfo,
    PagesProjectInfo,
    ZoneInfo,
)
from n4_cli.provisioning.models import (
    CreatedResource,
    ResolutionState,
    ResourceEntry,
    ResourceKind,
    ResourceListing,
    Reuse,
)
from n4_cli.provisioning.orchestrator import (
    ProvisioningEvent,
    ProvisioningOrchestrator,
    build_project_payload,
)
from n4_cli.provisioning.plan import Intent, ProvisioningPlan
from n4_cli.provisioning.steps import PROVISIONING_STEPS, STEP_INDEX


def production_config(fake_cloudflare, index: int = -1) -> dict:
    return fake_cloudflare.payloads[index]["deployment_configs"]["production"]


class TestStorageAndDatabaseDisabled:
    """Known account with R2 and D1 disabled."""

    @pytest.mark.asyncio
    async def test_goes_straight_to_project(self, make_intent, make_orchestrator, fake_cloudflare) -> None:
        """Account resolves without prompting and resource steps are skipped."""
        events: list[ProvisioningEvent] = []
        intent = make_intent(account_id="acc-1", use_bucket=False, use_database=False)
        orchestrator, prompter = make_orchestrator(intent, on_event=events.append)

        plan = await orchestrator.run()

        assert prompter.calls == []
        assert plan.account_id == "acc-1"
        assert plan.account_name == "Main Account"
        assert plan.pages_project == "my-app"
        assert plan.state_of(ResourceKind.BUCKET) is ResolutionState.SKIPPED
        assert plan.state_of(ResourceKind.DATABASE) is ResolutionState.SKIPPED
        assert "list_buckets" not in fake_cloudflare.calls
        assert "list_databases" not in fake_cloudflare.calls
        assert "list_zones" not in fake_cloudflare.calls

        started = [e.step_id for e in events if e.type == "step_started"]
        assert started == ["preamble", "account", "supabase", "project", "custom_domain"]
        skipped = {e.step_id for e in events if e.type == "step_skipped"}
        assert skipped == {"zone", "bucket", "bucket_public_url", "database"}

    @pytest.mark.asyncio
    async def test_payload_omits_bindings(self, make_intent, make_orchestrator, fake_cloudflare) -> None:
        """Skipped kinds leave no keys in the creation payload."""
        intent = make_intent(account_id="acc-1", use_bucket=False, use_database=False)
        orchestrator, _ = make_orchestrator(intent)

        await orchestrator.run()

        production = production_config(fake_cloudflare)
        assert "d1_databases" not in production
        assert "r2_buckets" not in production
        assert set(production["env_vars"]) == {"SUPABASE_URL", "SUPABASE_ANON_KEY"}
        assert production["env_vars"]["SUPABASE_URL"] == {
            "type": "plain_text",
            "value": "https://abc.supabase.co",
        }


class TestAccountResolution:
    """Tests for the account step."""

    @pytest.mark.asyncio
    async def test_single_account_is_confirmed(self, make_intent, make_orchestrator) -> None:
        """A lone account is offered with a yes/no question."""
        intent = make_intent(use_bucket=False, use_database=False)
        orchestrator, prompter = make_orchestrator(intent, [True])

        plan = await orchestrator.run()

        assert plan.account_id == "acc-1"
        assert prompter.calls[0][0] == "confirm"
        assert "Main Account" in prompter.calls[0][1]

    @pytest.mark.asyncio
    async def test_declining_only_account_fails(self, make_intent, make_orchestrator) -> None:
        """Accounts cannot be created, so declining the only one is fatal."""
        intent = make_intent(use_bucket=False, use_database=False)
        orchestrator, _ = make_orchestrator(intent, [False])

        with pytest.raises(NoUsableResourceError):
            await orchestrator.run()

        assert orchestrator.plan.state_of(ResourceKind.ACCOUNT) is ResolutionState.FAILED

    @pytest.mark.asyncio
    async def test_unknown_account_id_raises_not_found(self, make_intent, make_orchestrator) -> None:
        """An account id from flags must exist; there is no interactive fallback."""
        intent = make_intent(account_id="missing", use_bucket=False, use_database=False)
        orchestrator, prompter = make_orchestrator(intent)

        with pytest.raises(ResourceNotFoundError) as exc_info:
            await orchestrator.run()

        assert exc_info.value.identifier == "missing"
        assert prompter.calls == []

    @pytest.mark.asyncio
    async def test_invalid_token_stops_before_listing(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Token verification failure is fatal."""
        fake_cloudflare.token_valid = False
        orchestrator, _ = make_orchestrator(make_intent())

        with pytest.raises(ProviderUnauthorizedError):
            await orchestrator.run()

        assert fake_cloudflare.calls == ["verify_token"]
        assert orchestrator.api_token is None


class TestPreamble:
    """Tests for project basics."""

    @pytest.mark.asyncio
    async def test_prompts_with_defaults(self, make_orchestrator) -> None:
        """Name and destination default to the template name."""
        intent = Intent(
            account_id="acc-1",
            use_bucket=False,
            use_database=False,
            supabase_url="https://abc.supabase.co",
            supabase_anon_key="anon-key",
        )
        orchestrator, prompter = make_orchestrator(intent, [None, None, "token-xyz"])

        plan = await orchestrator.run()

        assert prompter.defaults[:2] == ["n4-stack", "./n4-stack"]
        assert plan.destination == "./n4-stack"
        assert plan.pages_project == "n4-stack"
        assert orchestrator.api_token == "token-xyz"

    @pytest.mark.asyncio
    async def test_invalid_name_is_asked_again(self, make_orchestrator) -> None:
        """Invalid project names are rejected until a valid one is entered."""
        intent = Intent(
            destination="./site",
            api_token="token",
            account_id="acc-1",
            use_bucket=False,
            use_database=False,
            supabase_url="https://abc.supabase.co",
            supabase_anon_key="anon-key",
        )
        orchestrator, prompter = make_orchestrator(intent, ["Bad Name!", "good-name"])

        plan = await orchestrator.run()

        assert plan.pages_project == "good-name"
        assert len(prompter.calls) == 2


class TestZoneAndPublicUrl:
    """Tests for the domain and R2 public URL steps."""

    @pytest.mark.asyncio
    async def test_declined_zone_skips_public_url(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """No domain means the DNS scan is never attempted."""
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        intent = make_intent(use_database=False)
        # account, create domain?, bucket without domain?, use assets?
        orchestrator, _ = make_orchestrator(intent, [True, False, True, True])

        plan = await orchestrator.run()

        assert plan.zone_id is None
        assert plan.zone_name is None
        assert plan.state_of(ResourceKind.ZONE) is ResolutionState.SKIPPED
        assert plan.bucket_name == "assets"
        assert plan.bucket_public_url is None
        assert "list_dns_records" not in fake_cloudflare.calls
        assert production_config(fake_cloudflare)["r2_buckets"] == {
            "R2_BUCKET": {"name": "assets"}
        }

    @pytest.mark.asyncio
    async def test_declined_bucket_without_domain(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Declining a bucket without a domain skips storage."""
        intent = make_intent(account_id="acc-1", use_database=False)
        orchestrator, _ = make_orchestrator(intent, [False, False])

        plan = await orchestrator.run()

        assert plan.storage_enabled is False
        assert plan.state_of(ResourceKind.BUCKET) is ResolutionState.SKIPPED
        assert "list_buckets" not in fake_cloudflare.calls

    @pytest.mark.asyncio
    async def test_zone_step_runs_before_public_url(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """The public URL step starts only after the zone step completed."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        events: list[ProvisioningEvent] = []
        intent = make_intent(
            account_id="acc-1",
            zone_id="zone-1",
            bucket_name="assets",
            bucket_public_url="cdn.example.com",
            use_database=False,
        )
        orchestrator, _ = make_orchestrator(intent, [False], on_event=events.append)

        await orchestrator.run()

        sequence = [(e.type, e.step_id) for e in events]
        assert sequence.index(("step_completed", "zone")) < sequence.index(
            ("step_started", "bucket_public_url")
        )

    @pytest.mark.asyncio
    async def test_public_url_before_zone_is_rejected(self, make_intent, make_orchestrator) -> None:
        """Running the public URL step without a zone decision is an error."""
        orchestrator, _ = make_orchestrator(make_intent())

        with pytest.raises(RuntimeError):
            await orchestrator._execute_step(PROVISIONING_STEPS[STEP_INDEX["bucket_public_url"]])
        with pytest.raises(RuntimeError, match="zone decision"):
            await orchestrator._step_bucket_public_url()

    @pytest.mark.asyncio
    async def test_single_dns_match_is_used(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """A single R2 DNS record becomes the public URL once confirmed."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        fake_cloudflare.dns_records = {
            "zone-1": [DnsRecordInfo(id="r1", name="cdn.example.com", type="CNAME", content="public.r2.dev")]
        }
        intent = make_intent(
            account_id="acc-1", zone_id="zone-1", bucket_name="assets", use_database=False
        )
        # use cdn.example.com?, custom domain?
        orchestrator, prompter = make_orchestrator(intent, [True, False])

        plan = await orchestrator.run()

        assert "cdn.example.com" in prompter.calls[0][1]
        assert plan.bucket_public_url == "https://cdn.example.com"
        assert production_config(fake_cloudflare)["env_vars"]["R2_PUBLIC_URL"]["value"] == (
            "https://cdn.example.com"
        )

    @pytest.mark.asyncio
    async def test_several_dns_matches_ask_for_url(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Several matching records fall back to manual entry."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        fake_cloudflare.dns_records = {
            "zone-1": [
                DnsRecordInfo(id="r1", name="cdn.example.com", type="CNAME", content="public.r2.dev"),
                DnsRecordInfo(id="r2", name="img.example.com", type="CNAME", content="public.r2.dev"),
            ]
        }
        intent = make_intent(
            account_id="acc-1", zone_id="zone-1", bucket_name="assets", use_database=False
        )
        orchestrator, prompter = make_orchestrator(intent, ["img.example.com", False])

        plan = await orchestrator.run()

        assert prompter.calls[0][0] == "text"
        assert "cdn.example.com" in prompter.calls[0][1]
        assert plan.bucket_public_url == "https://img.example.com"

    @pytest.mark.asyncio
    async def test_dns_failure_is_a_warning(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """A DNS lookup the token may not perform does not stop the run."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        fake_cloudflare.dns_error = ProviderUnauthorizedError("Cloudflare", "forbidden", 403)
        intent = make_intent(
            account_id="acc-1", zone_id="zone-1", bucket_name="assets", use_database=False
        )
        # URL on another domain?, continue without?, custom domain?
        orchestrator, _ = make_orchestrator(intent, [False, True, False])

        plan = await orchestrator.run()

        assert plan.bucket_public_url is None
        assert any("DNS" in w for w in orchestrator.warnings)

    @pytest.mark.asyncio
    async def test_refusing_to_continue_without_url_aborts(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Declining to continue without a public URL exits."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        intent = make_intent(
            account_id="acc-1", zone_id="zone-1", bucket_name="assets", use_database=False
        )
        orchestrator, _ = make_orchestrator(intent, [False, False])

        with pytest.raises(ProvisioningAbortedError):
            await orchestrator.run()

    @pytest.mark.asyncio
    async def test_creates_zone(self, make_intent, make_orchestrator, fake_cloudflare) -> None:
        """A new domain is created, normalized and recorded in the ledger."""
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        intent = make_intent(
            account_id="acc-1",
            bucket_name="assets",
            bucket_public_url="https://cdn.example.com",
            use_database=False,
        )
        # create a domain?, its name, custom domain?
        orchestrator, _ = make_orchestrator(intent, [True, "Example.com", False])

        plan = await orchestrator.run()

        assert plan.zone_name == "example.com"
        assert plan.zone_id == "zone-example.com"
        assert CreatedResource(ResourceKind.ZONE, "zone-example.com", "example.com") in plan.created
        assert any("nameservers" in w for w in orchestrator.warnings)


class TestIntentNeverPrompts:
    """Every value supplied up front is used without asking."""

    @pytest.mark.asyncio
    async def test_fully_specified_run(self, make_intent, make_orchestrator, fake_cloudflare) -> None:
        """A complete intent runs without a single prompt."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.buckets = [BucketInfo(name="assets")]
        fake_cloudflare.databases = [DatabaseInfo(id="db-1", name="app-db")]
        intent = make_intent(
            account_id="acc-1",
            zone_id="zone-1",
            bucket_name="assets",
            bucket_public_url="https://cdn.example.com",
            database_id="db-1",
            custom_domain="app.example.com",
        )
        orchestrator, prompter = make_orchestrator(intent)

        plan = await orchestrator.run()

        assert prompter.calls == []
        assert plan.zone_name == "example.com"
        assert plan.database_name == "app-db"
        assert plan.custom_domain == "app.example.com"
        assert fake_cloudflare.domains == [("my-app", "app.example.com")]
        assert plan.created == [CreatedResource(ResourceKind.PROJECT, "my-app", "my-app")]
        production = production_config(fake_cloudflare)
        assert production["d1_databases"] == {"DB": {"id": "db-1"}}
        assert production["r2_buckets"] == {"R2_BUCKET": {"name": "assets"}}

    @pytest.mark.asyncio
    async def test_database_by_name(self, make_intent, make_orchestrator, fake_cloudflare) -> None:
        """A database name from flags resolves to its id."""
        fake_cloudflare.databases = [DatabaseInfo(id="db-1", name="app-db")]
        intent = make_intent(account_id="acc-1", use_bucket=False, database_name="app-db")
        orchestrator, prompter = make_orchestrator(intent)

        plan = await orchestrator.run()

        assert plan.database_id == "db-1"
        assert prompter.calls == []

    @pytest.mark.asyncio
    async def test_unknown_bucket_raises_not_found(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """A bucket named by flags must exist."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        intent = make_intent(account_id="acc-1", zone_id="zone-1", bucket_name="ghost")
        orchestrator, _ = make_orchestrator(intent)

        with pytest.raises(ResourceNotFoundError):
            await orchestrator.run()


class TestProjectConflicts:
    """Tests for the Pages project conflict menu."""

    @pytest.mark.asyncio
    async def test_use_existing_populates_from_existing(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Plan fields come from the existing project, not the payload."""
        fake_cloudflare.projects["my-app"] = PagesProjectInfo(
            name="my-app", subdomain="my-app-7x2.pages.dev", production_branch="main"
        )
        intent = make_intent(account_id="acc-1", use_bucket=False, use_database=False)
        orchestrator, prompter = make_orchestrator(intent, ["use_existing"])

        plan = await orchestrator.run()

        assert plan.pages_project == "my-app"
        assert plan.pages_subdomain == "my-app-7x2.pages.dev"
        assert plan.created == []
        assert [kind for kind, _ in prompter.calls] == ["choice"]
        assert prompter.choices[0] == ["use_existing", "create_new", "exit"]

    @pytest.mark.asyncio
    async def test_create_new_retries_with_new_name(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Choosing a different name retries creation once."""
        fake_cloudflare.projects["my-app"] = PagesProjectInfo(name="my-app")
        intent = make_intent(account_id="acc-1", use_bucket=False, use_database=False)
        orchestrator, prompter = make_orchestrator(intent, ["create_new", "my-app-two"])

        plan = await orchestrator.run()

        assert [p["name"] for p in fake_cloudflare.payloads] == ["my-app", "my-app-two"]
        assert plan.pages_project == "my-app-two"
        assert plan.pages_subdomain == "my-app-two.pages.dev"
        assert plan.created == [CreatedResource(ResourceKind.PROJECT, "my-app-two", "my-app-two")]
        assert prompter.defaults[-1] == "my-app-2"

    @pytest.mark.asyncio
    async def test_menu_shown_once_per_conflict(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Repeated conflicts each get exactly one menu."""
        fake_cloudflare.projects["my-app"] = PagesProjectInfo(name="my-app")
        fake_cloudflare.projects["my-app-2"] = PagesProjectInfo(name="my-app-2")
        intent = make_intent(account_id="acc-1", use_bucket=False, use_database=False)
        orchestrator, prompter = make_orchestrator(
            intent, ["create_new", None, "create_new", None]
        )

        plan = await orchestrator.run()

        assert [p["name"] for p in fake_cloudflare.payloads] == [
            "my-app",
            "my-app-2",
            "my-app-2-2",
        ]
        assert [kind for kind, _ in prompter.calls].count("choice") == 2
        assert plan.pages_project == "my-app-2-2"

    @pytest.mark.asyncio
    async def test_exit_aborts(self, make_intent, make_orchestrator, fake_cloudflare) -> None:
        """Choosing exit stops the run."""
        fake_cloudflare.projects["my-app"] = PagesProjectInfo(name="my-app")
        intent = make_intent(account_id="acc-1", use_bucket=False, use_database=False)
        orchestrator, _ = make_orchestrator(intent, ["exit"])

        with pytest.raises(ProvisioningAbortedError):
            await orchestrator.run()

        assert orchestrator.plan.state_of(ResourceKind.PROJECT) is ResolutionState.FAILED


class TestExistingProject:
    """Tests for deploying to a project named by flags."""

    @pytest.mark.asyncio
    async def test_verified_project_is_not_created(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """A readable project is reused as is."""
        fake_cloudflare.projects["legacy"] = PagesProjectInfo(name="legacy", subdomain="legacy.pages.dev")
        intent = make_intent(
            account_id="acc-1", use_bucket=False, use_database=False, existing_project="legacy"
        )
        orchestrator, _ = make_orchestrator(intent)

        plan = await orchestrator.run()

        assert plan.pages_project == "legacy"
        assert "create_pages_project" not in fake_cloudflare.calls

    @pytest.mark.asyncio
    async def test_unverified_project_offers_new_name(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """A project that cannot be read is never used; a new one is created instead."""
        fake_cloudflare.project_read_error = ProviderUnauthorizedError("Cloudflare", "forbidden", 403)
        intent = make_intent(
            account_id="acc-1", use_bucket=False, use_database=False, existing_project="theirs"
        )
        orchestrator, prompter = make_orchestrator(intent, ["create_new", "mine"])

        plan = await orchestrator.run()

        assert prompter.choices[0] == ["create_new", "exit"]
        assert plan.pages_project == "mine"
        assert [p["name"] for p in fake_cloudflare.payloads] == ["mine"]

    @pytest.mark.asyncio
    async def test_unverified_project_exit(self, make_intent, make_orchestrator) -> None:
        """Choosing exit for an unverifiable project aborts."""
        intent = make_intent(
            account_id="acc-1", use_bucket=False, use_database=False, existing_project="unknown"
        )
        orchestrator, _ = make_orchestrator(intent, ["exit"])

        with pytest.raises(ProvisioningAbortedError):
            await orchestrator.run()


class TestFailures:
    """Tests for fatal errors and the created-resources ledger."""

    @pytest.mark.asyncio
    async def test_error_carries_created_resources(
        self, make_intent, make_orchestrator, fake_supabase
    ) -> None:
        """Resources created before a failure are reported, not rolled back."""
        fake_supabase.error = ProviderUnauthorizedError("Supabase", "anon key rejected", 401)
        intent = make_intent(account_id="acc-1", use_bucket=False)
        # create a database?, its name (default)
        orchestrator, _ = make_orchestrator(intent, [True, None])

        with pytest.raises(ProviderUnauthorizedError) as exc_info:
            await orchestrator.run()

        expected = CreatedResource(ResourceKind.DATABASE, "db-my-app-database", "my-app-database")
        assert exc_info.value.created == (expected,)
        assert orchestrator.plan.created == [expected]

    @pytest.mark.asyncio
    async def test_custom_domain_failure_is_a_warning(
        self, make_intent, make_orchestrator, fake_cloudflare
    ) -> None:
        """Attaching a custom domain is best effort."""
        fake_cloudflare.zones = [ZoneInfo(id="zone-1", name="example.com")]
        fake_cloudflare.domain_error = ProviderUnavailableError("Cloudflare", "timeout")
        intent = make_intent(
            account_id="acc-1",
            zone_id="zone-1",
            use_bucket=False,
            use_database=False,
            custom_domain="app.example.com",
        )
        orchestrator, _ = make_orchestrator(intent)

        plan = await orchestrator.run()

        assert plan.custom_domain is None
        assert any("app.example.com" in w for w in orchestrator.warnings)


class TestVerifiedSelection:
    """A reused id must be present in the live listing."""

    def test_returns_listed_entry(self) -> None:
        entry = ResourceEntry(id="db-1", name="app-db")
        listing = ResourceListing(ResourceKind.DATABASE, (entry,), "acc-1")

        found = ProvisioningOrchestrator._verified(listing, Reuse("app-db", "app-db"), "D1 database")

        assert found is entry

    def test_missing_id_is_not_found(self) -> None:
        listing = ResourceListing(ResourceKind.DATABASE, (), "acc-1")

        with pytest.raises(ResourceNotFoundError, match="db-9"):
            ProvisioningOrchestrator._verified(listing, Reuse("db-9", "db-9"), "D1 database")


class TestBuildProjectPayload:
    """Tests for the Pages creation payload."""

    def test_includes_bound_resources(self) -> None:
        """Selected resources are bound by their ids and names."""
        plan = ProvisioningPlan(supabase_url="https://abc.supabase.co", supabase_anon_key="k")
        plan.record_bucket("assets")
        plan.record_bucket_public_url("https://cdn.example.com")
        plan.record_database("db-1", "app-db")

        payload = build_project_payload(plan, "my-app", TemplateConfig())

        assert payload["name"] == "my-app"
        assert payload["production_branch"] == "main"
        assert payload["deployment_configs"]["preview"] == {}
        production = payload["deployment_configs"]["production"]
        assert production["compatibility_date"] == "2023-10-11"
        assert production["d1_databases"] == {"DB": {"id": "db-1"}}
        assert production["r2_buckets"] == {"R2_BUCKET": {"name": "assets"}}
        assert set(production["env_vars"]) == {"SUPABASE_URL", "SUPABASE_ANON_KEY", "R2_PUBLIC_URL"}
