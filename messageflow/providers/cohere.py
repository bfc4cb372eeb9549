"""Cohere provider: Generate API over httpx."""

from messageflow.config.settings import get_settings
from messageflow.errors import ProviderError
from messageflow.providers.base import Completion
from messageflow.providers.http import HTTPProvider


class CohereProvider(HTTPProvider):

    name = "cohere"
    timeout = 45.0
    retry_delay = 0.4
    health_max_tokens = 10

    async def _complete(
        self, prompt: str, *, max_tokens: int, temperature: float, json_mode: bool
    ) -> Completion:
        if not self.config.api_key:
            raise ProviderError(status_code=401, detail="cohere API key not configured")

        base_url = self.config.base_url or get_settings().cohere_base_url
        body = {
            "model": self.config.model_name,
            "prompt": prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

        data = await self._post(f"{base_url.rstrip('/')}/v1/generate", body, headers)

        generations = data.get("generations", [])
        if not generations:
            raise ProviderError(status_code=502, detail="cohere returned an empty response")
        # Token counts are only reported on billed responses
        billed = (data.get("meta") or {}).get("billed_units") or {}
        return Completion(
            text=generations[0].get("text", ""),
            input_tokens=int(billed.get("input_tokens", 0)),
            output_tokens=int(billed.get("output_tokens", 0)),
        )
