"""Anthropic Claude provider: Messages API over httpx."""

from messageflow.config.settings import get_settings
from messageflow.errors import ProviderError
from messageflow.providers.base import Completion
from messageflow.providers.http import HTTPProvider


class ClaudeProvider(HTTPProvider):

    name = "claude"
    timeout = 60.0
    retry_delay = 0.5

    def _build_headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": get_settings().anthropic_version,
        }

    async def _complete(
        self, prompt: str, *, max_tokens: int, temperature: float, json_mode: bool
    ) -> Completion:
        base_url = self.config.base_url or get_settings().anthropic_base_url
        body = {
            "model": self.config.model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        data = await self._post(f"{base_url.rstrip('/')}/v1/messages", body, self._build_headers())

        blocks = [b for b in data.get("content", []) if b.get("type", "text") == "text"]
        if not blocks:
            raise ProviderError(status_code=502, detail="claude returned an empty response")
        usage = data.get("usage") or {}
        return Completion(
            text=blocks[0].get("text", ""),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )
