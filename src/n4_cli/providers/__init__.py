"""Provider API clients (Cloudflare, Supabase)."""

from n4_cli.providers.base import (
    AccountInfo,
    BucketInfo,
    CloudflareApi,
    DatabaseInfo,
    DnsRecordInfo,
    PagesProjectInfo,
    ZoneInfo,
)
from n4_cli.providers.cloudflare import CloudflareClient
from n4_cli.providers.supabase import SupabaseClient

__all__ = [
    "AccountInfo",
    "BucketInfo",
    "CloudflareApi",
    "CloudflareClient",
    "DatabaseInfo",
    "DnsRecordInfo",
    "PagesProjectInfo",
    "SupabaseClient",
    "ZoneInfo",
]
