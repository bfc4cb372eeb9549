"""OpenAI provider implementation (also serves Azure OpenAI and compatible APIs)."""

from messageflow.config.settings import get_settings
from messageflow.errors import ProviderError
from messageflow.providers.base import Completion
from messageflow.providers.http import HTTPProvider

DEFAULT_AZURE_API_VERSION = "2024-06-01"


class OpenAIProvider(HTTPProvider):
    """Calls the chat completions API with JSON response format."""

    name = "openai"
    timeout = 30.0
    retry_delay = 0.4
    # JSON mode only returns objects, so ask for a wrapper
    actions_prompt = (
        "Extract the action items as a JSON object with an \"actions\" array of strings.\n\n"
        "Text: "
    )

    @property
    def is_azure(self) -> bool:
        return bool(self.config.azure_endpoint)

    def _build_url(self) -> tuple[str, dict | None]:
        if self.is_azure:
            endpoint = self.config.azure_endpoint.rstrip("/")
            deployment = self.config.azure_deployment or self.config.model_name
            version = self.config.azure_api_version or DEFAULT_AZURE_API_VERSION
            return (
                f"{endpoint}/openai/deployments/{deployment}/chat/completions",
                {"api-version": version},
            )
        base_url = self.config.base_url or get_settings().openai_base_url
        return f"{base_url.rstrip('/')}/v1/chat/completions", None

    def _build_headers(self) -> dict:
        if self.is_azure:
            return {"Content-Type": "application/json", "api-key": self.config.api_key}
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    async def _complete(
        self, prompt: str, *, max_tokens: int, temperature: float, json_mode: bool
    ) -> Completion:
        url, params = self._build_url()
        body = {
            "model": self.config.model_name,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        data = await self._post(url, body, self._build_headers(), params=params)

        choices = data.get("choices", [])
        if not choices:
            raise ProviderError(status_code=502, detail="openai returned an empty response")
        usage = data.get("usage") or {}
        return Completion(
            text=choices[0].get("message", {}).get("content", "") or "",
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )
