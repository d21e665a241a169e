"""Uniform listings of existing provider resources."""

from n4_cli.observability import get_logger
from n4_cli.providers.base import CloudflareApi, DnsRecordInfo
from n4_cli.provisioning.models import ResourceEntry, ResourceKind, ResourceListing

logger = get_logger(__name__)

# Content of DNS records that expose an R2 bucket on a custom domain
R2_PUBLIC_HOSTNAME = "public.r2.dev"


class ResourceCatalog:
    """Queries a provider for existing resources of a kind.

    Provider errors propagate unchanged (``ProviderUnauthorizedError``,
    ``ProviderUnavailableError``); an empty listing is a normal result.
    Nothing is cached: each call reflects current provider state.
    """

    def __init__(self, client: CloudflareApi) -> None:
        self.client = client

    # Defined before ``list`` so the annotation resolves to the builtin.
    async def find_public_bucket_records(
        self, zone_id: str, hostname: str = R2_PUBLIC_HOSTNAME
    ) -> list[DnsRecordInfo]:
        """DNS records in a zone whose value points at the storage public hostname."""
        records = await self.client.list_dns_records(zone_id, content=hostname)
        return [r for r in records if r.content.rstrip(".").endswith(hostname)]

    async def list(self, kind: ResourceKind, scope_id: str | None = None) -> ResourceListing:
        """List existing resources of ``kind``.

        Args:
            kind: Resource kind to list
            scope_id: Account id for account-scoped kinds

        Returns:
            Ordered listing of ``(id, name)`` entries

        Raises:
            ValueError: If a scoped kind is listed without a scope, or the
                kind has no listing
        """
        if kind is ResourceKind.ACCOUNT:
            accounts = await self.client.list_accounts()
            entries = [ResourceEntry(id=a.id, name=a.name) for a in accounts]
        else:
            if not scope_id:
                raise ValueError(f"Listing {kind.value}s requires an account id")
            if kind is ResourceKind.ZONE:
                zones = await self.client.list_zones(scope_id)
                entries = [ResourceEntry(id=z.id, name=z.name) for z in zones]
            elif kind is ResourceKind.BUCKET:
                buckets = await self.client.list_buckets(scope_id)
                # Buckets are addressed by name
                entries = [ResourceEntry(id=b.name, name=b.name) for b in buckets]
            elif kind is ResourceKind.DATABASE:
                databases = await self.client.list_databases(scope_id)
                entries = [ResourceEntry(id=d.id, name=d.name) for d in databases]
            else:
                raise ValueError(f"No catalog listing for {kind.value}")

        logger.debug(
            "Listed resources",
            context={"kind": kind.value, "scope_id": scope_id, "count": len(entries)},
        )
        return ResourceListing(kind=kind, entries=tuple(entries), scope_id=scope_id)
