"""Pytest configuration and fixtures."""

from typing import Any

import pytest

from n4_cli.exceptions import (
    ProviderUnauthorizedError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from n4_cli.protocols.process import ProcessResult
from n4_cli.protocols.prompts import Choice
from n4_cli.providers.base import (
    AccountInfo,
    BucketInfo,
    DatabaseInfo,
    DnsRecordInfo,
    PagesProjectInfo,
    ZoneInfo,
)
from n4_cli.provisioning.orchestrator import ProvisioningOrchestrator
from n4_cli.provisioning.plan import Intent


class ScriptedPrompter:
    """PromptProvider that answers from a queue and records every question.

    A ``None`` answer to a text prompt accepts the default.
    """

    def __init__(self, answers: list[Any] | None = None) -> None:
        self.answers = list(answers or [])
        self.calls: list[tuple[str, str]] = []
        self.choices: list[list[str]] = []
        self.defaults: list[Any] = []

    def _next(self, kind: str, message: str) -> Any:
        self.calls.append((kind, message))
        if not self.answers:
            raise AssertionError(f"Unexpected {kind} prompt: {message}")
        return self.answers.pop(0)

    async def ask_choice(self, message: str, choices: list[Choice]) -> str:
        self.choices.append([c.value for c in choices])
        return self._next("choice", message)

    async def ask_text(
        self, message: str, default: str | None = None, secret: bool = False
    ) -> str:
        self.defaults.append(default)
        answer = self._next("text", message)
        if answer is None:
            return default or ""
        return answer

    async def ask_confirm(self, message: str, default: bool = True) -> bool:
        self.defaults.append(default)
        return self._next("confirm", message)


class FakeCloudflare:
    """In-memory Cloudflare implementing ``CloudflareApi``."""

    def __init__(self) -> None:
        self.accounts = [AccountInfo(id="acc-1", name="Main Account")]
        self.zones: list[ZoneInfo] = []
        self.buckets: list[BucketInfo] = []
        self.databases: list[DatabaseInfo] = []
        self.dns_records: dict[str, list[DnsRecordInfo]] = {}
        self.projects: dict[str, PagesProjectInfo] = {}
        self.payloads: list[dict[str, Any]] = []
        self.domains: list[tuple[str, str]] = []
        self.calls: list[str] = []
        self.token_valid = True
        self.dns_error: Exception | None = None
        self.project_read_error: Exception | None = None
        self.domain_error: Exception | None = None

    async def verify_token(self) -> None:
        self.calls.append("verify_token")
        if not self.token_valid:
            raise ProviderUnauthorizedError("Cloudflare", "Invalid API Token", status_code=401)

    async def list_accounts(self) -> list[AccountInfo]:
        self.calls.append("list_accounts")
        return list(self.accounts)

    async def list_zones(self, account_id: str) -> list[ZoneInfo]:
        self.calls.append("list_zones")
        return list(self.zones)

    async def create_zone(self, account_id: str, name: str) -> ZoneInfo:
        self.calls.append("create_zone")
        zone = ZoneInfo(id=f"zone-{name}", name=name, status="pending")
        self.zones.append(zone)
        return zone

    async def list_buckets(self, account_id: str) -> list[BucketInfo]:
        self.calls.append("list_buckets")
        return list(self.buckets)

    async def create_bucket(self, account_id: str, name: str) -> BucketInfo:
        self.calls.append("create_bucket")
        if any(b.name == name for b in self.buckets):
            raise ResourceConflictError("bucket", name)
        bucket = BucketInfo(name=name)
        self.buckets.append(bucket)
        return bucket

    async def list_dns_records(
        self, zone_id: str, content: str | None = None
    ) -> list[DnsRecordInfo]:
        self.calls.append("list_dns_records")
        if self.dns_error is not None:
            raise self.dns_error
        records = self.dns_records.get(zone_id, [])
        if content:
            records = [r for r in records if content in r.content]
        return list(records)

    async def list_databases(self, account_id: str) -> list[DatabaseInfo]:
        self.calls.append("list_databases")
        return list(self.databases)

    async def create_database(self, account_id: str, name: str) -> DatabaseInfo:
        self.calls.append("create_database")
        database = DatabaseInfo(id=f"db-{name}", name=name)
        self.databases.append(database)
        return database

    async def get_pages_project(self, account_id: str, name: str) -> PagesProjectInfo:
        self.calls.append("get_pages_project")
        if self.project_read_error is not None:
            raise self.project_read_error
        if name not in self.projects:
            raise ResourceNotFoundError("pages project", name)
        return self.projects[name]

    async def create_pages_project(
        self, account_id: str, payload: dict[str, Any]
    ) -> PagesProjectInfo:
        self.calls.append("create_pages_project")
        self.payloads.append(payload)
        name = payload["name"]
        if name in self.projects:
            raise ResourceConflictError("pages project", name)
        project = PagesProjectInfo(name=name, subdomain=f"{name}.pages.dev")
        self.projects[name] = project
        return project

    async def add_pages_domain(self, account_id: str, project: str, domain: str) -> None:
        self.calls.append("add_pages_domain")
        if self.domain_error is not None:
            raise self.domain_error
        self.domains.append((project, domain))


class FakeSupabase:
    """Supabase probe with a configurable failure."""

    def __init__(self) -> None:
        self.error: Exception | None = None
        self.probed: list[tuple[str, str]] = []

    async def probe(self) -> None:
        if self.error is not None:
            raise self.error


class FakeRunner:
    """ProcessRunner recording commands; fails any command containing a key of ``failures``."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.failures: dict[str, ProcessResult] = {}

    async def run(
        self,
        command: list[str],
        cwd: Any = None,
        env: dict[str, str] | None = None,
    ) -> ProcessResult:
        self.calls.append({"command": list(command), "cwd": cwd, "env": env})
        joined = " ".join(command)
        for needle, result in self.failures.items():
            if needle in joined:
                return result
        return ProcessResult(stdout="", stderr="", exit_code=0)


@pytest.fixture
def fake_cloudflare() -> FakeCloudflare:
    return FakeCloudflare()


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_intent():
    """Build an intent with the basics filled in so only resource prompts remain."""

    def _make(**overrides: Any) -> Intent:
        values: dict[str, Any] = {
            "project_name": "my-app",
            "destination": "./my-app",
            "api_token": "token-123",
            "supabase_url": "https://abc.supabase.co",
            "supabase_anon_key": "anon-key",
        }
        values.update(overrides)
        return Intent(**values)

    return _make


@pytest.fixture
def make_orchestrator(fake_cloudflare: FakeCloudflare, fake_supabase: FakeSupabase):
    """Build an orchestrator wired to the fakes and a scripted prompter."""

    def _make(
        intent: Intent, answers: list[Any] | None = None, **kwargs: Any
    ) -> tuple[ProvisioningOrchestrator, ScriptedPrompter]:
        prompter = ScriptedPrompter(answers)

        def supabase_factory(url: str, anon_key: str) -> FakeSupabase:
            fake_supabase.probed.append((url, anon_key))
            return fake_supabase

        orchestrator = ProvisioningOrchestrator(
            intent,
            prompter,
            client_factory=lambda token: fake_cloudflare,
            supabase_factory=supabase_factory,
            **kwargs,
        )
        return orchestrator, prompter

    return _make


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Sample configuration dictionary for testing."""
    return {
        "cloudflare": {"api_token": "cf-token", "account_id": "acc-1", "timeout_seconds": 10},
        "supabase": {"url": "https://abc.supabase.co", "anon_key": "anon-key"},
        "template": {"default_project_name": "n4-stack"},
        "pipeline": {"timeout_seconds": 600},
        "logging": {"level": "INFO", "format": "json"},
    }
