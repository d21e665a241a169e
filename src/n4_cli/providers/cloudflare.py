"""Cloudflare API client.

Typed wrapper over the Cloudflare v4 REST API covering the resources the
N4 stack uses:
- accounts and API token verification
- zones and DNS records
- R2 buckets
- D1 databases
- Pages projects and their custom domains
"""

from typing import TYPE_CHECKING, Any

import httpx

from n4_cli.exceptions import (
    ProviderUnauthorizedError,
    ProviderUnavailableError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from n4_cli.observability import get_logger
from n4_cli.providers.base import (
    AccountInfo,
    BucketInfo,
    DatabaseInfo,
    DnsRecordInfo,
    PagesProjectInfo,
    ZoneInfo,
)

if TYPE_CHECKING:
    from n4_cli.config import CloudflareConfig

logger = get_logger(__name__)

PROVIDER_NAME = "Cloudflare"
DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4"
PAGE_SIZE = 50


class CloudflareClient:
    """Cloudflare REST client.

    Every call opens a short-lived ``httpx.AsyncClient``; nothing is cached
    between calls so each listing reflects current provider state.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Cloudflare client.

        Args:
            api_token: Cloudflare API token (bearer)
            base_url: API root
            timeout_seconds: Per-request timeout, ``None`` to wait forever
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If the API token is empty
        """
        if not api_token:
            raise ValueError("Cloudflare api_token is required")

        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_config(
        cls, config: "CloudflareConfig", api_token: str | None = None
    ) -> "CloudflareClient":
        """Build a client from configuration, preferring an explicit token."""
        return cls(
            api_token=api_token or config.api_token or "",
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        """Get API request headers."""
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the first Cloudflare error message from a response."""
        try:
            errors = response.json().get("errors") or []
        except ValueError:
            errors = []
        if errors and isinstance(errors[0], dict) and errors[0].get("message"):
            return str(errors[0]["message"])
        return response.reason_phrase or f"HTTP {response.status_code}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        kind: str = "resource",
        identifier: str = "",
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON envelope.

        Raises:
            ProviderUnauthorizedError: On HTTP 401/403
            ResourceNotFoundError: On HTTP 404
            ResourceConflictError: On HTTP 409
            ProviderUnavailableError: On transport errors or any other failure
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(),
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Cloudflare request failed",
                context={"method": method, "path": path},
                error=e,
            )
            raise ProviderUnavailableError(PROVIDER_NAME, f"{method} {path}: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise ProviderUnauthorizedError(
                PROVIDER_NAME, self._error_message(response), status_code=status
            )
        if status == 404:
            raise ResourceNotFoundError(kind, identifier or path, self._error_message(response))
        if status == 409:
            raise ResourceConflictError(kind, identifier)
        if status not in (200, 201):
            raise ProviderUnavailableError(
                PROVIDER_NAME,
                f"{method} {path}: {self._error_message(response)}",
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailableError(
                PROVIDER_NAME, f"{method} {path}: invalid JSON response"
            ) from e

        if not data.get("success", True):
            raise ProviderUnavailableError(
                PROVIDER_NAME, f"{method} {path}: {self._error_message(response)}"
            )
        return data

    async def _paginate(
        self, path: str, params: dict[str, Any] | None = None, kind: str = "resource"
    ) -> list[dict[str, Any]]:
        """Collect ``result`` items across every page of a list endpoint."""
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            query = {**(params or {}), "page": page, "per_page": PAGE_SIZE}
            data = await self._request("GET", path, kind=kind, params=query)
            items.extend(data.get("result") or [])
            total_pages = (data.get("result_info") or {}).get("total_pages") or 1
            if page >= total_pages:
                return items
            page += 1

    async def verify_token(self) -> None:
        """Verify the API token.

        Raises:
            ProviderUnauthorizedError: If the token is invalid or not active
        """
        data = await self._request("GET", "/user/tokens/verify", kind="token")
        status = (data.get("result") or {}).get("status")
        if status and status != "active":
            raise ProviderUnauthorizedError(PROVIDER_NAME, f"API token is {status}")

    async def list_accounts(self) -> list[AccountInfo]:
        """List accounts available to the token."""
        results = await self._paginate("/accounts", kind="account")
        return [AccountInfo(id=a["id"], name=a.get("name", a["id"])) for a in results]

    async def list_zones(self, account_id: str) -> list[ZoneInfo]:
        """List full-setup zones for an account."""
        results = await self._paginate("/zones", {"account.id": account_id}, kind="zone")
        return [
            ZoneInfo(
                id=z["id"],
                name=z["name"],
                type=z.get("type", "full"),
                status=z.get("status"),
            )
            for z in results
            if z.get("type", "full") == "full"
        ]

    async def create_zone(self, account_id: str, name: str) -> ZoneInfo:
        """Add a zone to an account."""
        data = await self._request(
            "POST",
            "/zones",
            kind="zone",
            identifier=name,
            json={"name": name, "account": {"id": account_id}, "type": "full"},
        )
        result = data.get("result") or {}
        return ZoneInfo(
            id=result["id"],
            name=result.get("name", name),
            status=result.get("status"),
        )

    async def list_buckets(self, account_id: str) -> list[BucketInfo]:
        """List R2 buckets for an account.

        R2 pages with an opaque cursor in ``result_info.cursor`` rather than
        page numbers; listing stops once no cursor comes back.
        """
        path = f"/accounts/{account_id}/r2/buckets"
        buckets: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"per_page": PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            data = await self._request("GET", path, kind="bucket", params=params)
            buckets.extend((data.get("result") or {}).get("buckets") or [])
            next_cursor = (data.get("result_info") or {}).get("cursor")
            if not next_cursor or next_cursor == cursor:
                break
            cursor = next_cursor
        return [
            BucketInfo(
                name=b["name"],
                creation_date=b.get("creation_date"),
                location=b.get("location"),
            )
            for b in buckets
        ]

    async def create_bucket(self, account_id: str, name: str) -> BucketInfo:
        """Create an R2 bucket."""
        data = await self._request(
            "POST",
            f"/accounts/{account_id}/r2/buckets",
            kind="bucket",
            identifier=name,
            json={"name": name},
        )
        result = data.get("result") or {}
        return BucketInfo(
            name=result.get("name", name),
            creation_date=result.get("creation_date"),
            location=result.get("location"),
        )

    async def list_dns_records(
        self, zone_id: str, content: str | None = None
    ) -> list[DnsRecordInfo]:
        """List DNS records in a zone, optionally filtered by content."""
        params = {"content": content} if content else None
        results = await self._paginate(
            f"/zones/{zone_id}/dns_records", params, kind="dns record"
        )
        return [
            DnsRecordInfo(
                id=r["id"],
                name=r["name"],
                type=r.get("type", ""),
                content=r.get("content", ""),
            )
            for r in results
        ]

    async def list_databases(self, account_id: str) -> list[DatabaseInfo]:
        """List D1 databases for an account."""
        results = await self._paginate(
            f"/accounts/{account_id}/d1/database", kind="database"
        )
        return [DatabaseInfo(id=d["uuid"], name=d["name"]) for d in results]

    async def create_database(self, account_id: str, name: str) -> DatabaseInfo:
        """Create a D1 database."""
        data = await self._request(
            "POST",
            f"/accounts/{account_id}/d1/database",
            kind="database",
            identifier=name,
            json={"name": name},
        )
        result = data.get("result") or {}
        return DatabaseInfo(id=result["uuid"], name=result.get("name", name))

    async def get_pages_project(self, account_id: str, name: str) -> PagesProjectInfo:
        """Read a Pages project."""
        data = await self._request(
            "GET",
            f"/accounts/{account_id}/pages/projects/{name}",
            kind="pages project",
            identifier=name,
        )
        return PagesProjectInfo.from_result(data.get("result") or {})

    async def create_pages_project(
        self, account_id: str, payload: dict[str, Any]
    ) -> PagesProjectInfo:
        """Create a Pages project with its deployment configuration."""
        data = await self._request(
            "POST",
            f"/accounts/{account_id}/pages/projects",
            kind="pages project",
            identifier=payload.get("name", ""),
            json=payload,
        )
        return PagesProjectInfo.from_result(data.get("result") or {})

    async def add_pages_domain(self, account_id: str, project: str, domain: str) -> None:
        """Attach a custom domain to a Pages project."""
        await self._request(
            "POST",
            f"/accounts/{account_id}/pages/projects/{project}/domains",
            kind="pages domain",
            identifier=domain,
            json={"name": domain},
        )
