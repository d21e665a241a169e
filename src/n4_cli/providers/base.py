"""Typed provider results and the Cloudflare API protocol the core depends on."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class AccountInfo:
    """A Cloudflare account visible to the API token."""

    id: str
    name: str


@dataclass
class ZoneInfo:
    """A DNS zone (top level domain) in an account."""

    id: str
    name: str
    type: str = "full"
    status: str | None = None


@dataclass
class BucketInfo:
    """An R2 storage bucket."""

    name: str
    creation_date: str | None = None
    location: str | None = None


@dataclass
class DnsRecordInfo:
    """A DNS record in a zone."""

    id: str
    name: str
    type: str
    content: str


@dataclass
class DatabaseInfo:
    """A D1 database."""

    id: str
    name: str


@dataclass
class PagesProjectInfo:
    """A Cloudflare Pages project."""

    name: str
    subdomain: str | None = None
    domains: list[str] = field(default_factory=list)
    production_branch: str | None = None

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> "PagesProjectInfo":
        """Create from a Pages API ``result`` object."""
        return cls(
            name=result.get("name", ""),
            subdomain=result.get("subdomain"),
            domains=list(result.get("domains") or []),
            production_branch=result.get("production_branch"),
        )


@runtime_checkable
class CloudflareApi(Protocol):
    """Protocol for the Cloudflare REST operations used during provisioning.

    Implementations raise ``ProviderUnauthorizedError`` on rejected
    credentials, ``ProviderUnavailableError`` on transport failures,
    ``ResourceNotFoundError`` on 404 and ``ResourceConflictError`` on 409.
    """

    async def verify_token(self) -> None:
        """Check that the API token is valid and active."""
        ...

    async def list_accounts(self) -> list[AccountInfo]:
        """List accounts the token can access."""
        ...

    async def list_zones(self, account_id: str) -> list[ZoneInfo]:
        """List full-setup zones in an account."""
        ...

    async def create_zone(self, account_id: str, name: str) -> ZoneInfo:
        """Add a zone to an account."""
        ...

    async def list_buckets(self, account_id: str) -> list[BucketInfo]:
        """List R2 buckets in an account."""
        ...

    async def create_bucket(self, account_id: str, name: str) -> BucketInfo:
        """Create an R2 bucket."""
        ...

    async def list_dns_records(
        self, zone_id: str, content: str | None = None
    ) -> list[DnsRecordInfo]:
        """List DNS records in a zone, optionally filtered by record content."""
        ...

    async def list_databases(self, account_id: str) -> list[DatabaseInfo]:
        """List D1 databases in an account."""
        ...

    async def create_database(self, account_id: str, name: str) -> DatabaseInfo:
        """Create a D1 database."""
        ...

    async def get_pages_project(self, account_id: str, name: str) -> PagesProjectInfo:
        """Read a Pages project."""
        ...

    async def create_pages_project(
        self, account_id: str, payload: dict[str, Any]
    ) -> PagesProjectInfo:
        """Create a Pages project from a complete creation payload."""
        ...

    async def add_pages_domain(self, account_id: str, project: str, domain: str) -> None:
        """Attach a custom domain to a Pages project."""
        ...
