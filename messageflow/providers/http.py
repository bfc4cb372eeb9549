"""Shared httpx plumbing for HTTP-based vendor adapters."""

import httpx

from messageflow.errors import ProviderError
from messageflow.providers.base import LLMProvider


class HTTPProvider(LLMProvider):
    """LLMProvider that talks to its vendor over a lazily created AsyncClient."""

    def __init__(self, config):
        super().__init__(config)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))
        return self._client

    async def _post(self, url: str, body: dict, headers: dict, params: dict | None = None) -> dict:
        client = await self._get_client()
        try:
            response = await client.post(url, json=body, headers=headers, params=params)
        except httpx.ConnectError:
            raise ProviderError(status_code=502, detail=f"Cannot reach {self.name} API")
        except httpx.TimeoutException:
            raise ProviderError(status_code=504, detail=f"{self.name} API timed out")
        except httpx.HTTPError as e:
            raise ProviderError(status_code=502, detail=f"{self.name} upstream error: {e}")

        if response.status_code >= 400:
            raise ProviderError(
                status_code=response.status_code,
                detail=f"{self.name} returned {response.status_code}: {response.text[:500]}",
            )
        try:
            return response.json()
        except ValueError:
            raise ProviderError(status_code=502, detail=f"{self.name} returned a non-JSON body")

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
