"""Supabase credential probe."""

import httpx

from n4_cli.exceptions import ProviderUnauthorizedError, ProviderUnavailableError
from n4_cli.utils.validation import ensure_url_protocol

PROVIDER_NAME = "Supabase"


class SupabaseClient:
    """Validates a Supabase project URL and anon key pair.

    The REST root answers 200 for a valid anon key and 401 otherwise, which
    is all the provisioning run needs to know.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout_seconds: float | None = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not anon_key:
            raise ValueError("Supabase url and anon_key are required")

        self.url = ensure_url_protocol(url).rstrip("/")
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        """Get API request headers."""
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
        }

    async def probe(self) -> None:
        """Call the REST health endpoint.

        Raises:
            ProviderUnauthorizedError: If the anon key is rejected
            ProviderUnavailableError: If the project cannot be reached
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.get(f"{self.url}/rest/v1/", headers=self._headers())
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(PROVIDER_NAME, f"{self.url}: {e}") from e

        if response.status_code in (401, 403):
            raise ProviderUnauthorizedError(
                PROVIDER_NAME, "anon key rejected", status_code=response.status_code
            )
        if response.status_code != 200:
            raise ProviderUnavailableError(
                PROVIDER_NAME,
                f"{self.url}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
