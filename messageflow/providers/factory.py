"""Provider factory: memoizes one adapter per (vendor, model, endpoint)."""

import threading
from collections.abc import Callable

from messageflow.providers.anthropic import ClaudeProvider
from messageflow.providers.base import LLMProvider
from messageflow.providers.cohere import CohereProvider
from messageflow.providers.models import ProviderConfig
from messageflow.providers.openai import OpenAIProvider


def _bedrock(config: ProviderConfig) -> LLMProvider:
    # Lazy import to avoid pulling in boto3 for HTTP-only setups
    from messageflow.providers.bedrock import BedrockProvider
    return BedrockProvider(config)


# Vendor tag -> constructor. Gemini is reached through an
# OpenAI-compatible base_url.
DEFAULT_REGISTRY: dict[str, Callable[[ProviderConfig], LLMProvider]] = {
    "claude": ClaudeProvider,
    "anthropic": ClaudeProvider,
    "openai": OpenAIProvider,
    "azure_openai": OpenAIProvider,
    "azureopenai": OpenAIProvider,
    "google": OpenAIProvider,
    "gemini": OpenAIProvider,
    "cohere": CohereProvider,
    "bedrock": _bedrock,
}


class ProviderFactory:
    """Builds and caches provider instances.

    The cache key leaves out the API key and the tenant. An instance keeps
    the secret it was built with for the life of the process, and tenants
    whose configs share vendor, model and endpoint share one instance,
    including the first tenant's key, prices and usage counters.
    """

    def __init__(self, registry: dict[str, Callable[[ProviderConfig], LLMProvider]] | None = None):
        self._registry = dict(DEFAULT_REGISTRY if registry is None else registry)
        self._instances: dict[str, LLMProvider] = {}
        self._lock = threading.Lock()

    def supports(self, provider_name: str) -> bool:
        return provider_name.lower() in self._registry

    def create_provider(self, config: ProviderConfig) -> LLMProvider | None:
        """Get or create the instance for this config. None if the vendor is unknown."""
        with self._lock:
            key = config.cache_key
            if key in self._instances:
                return self._instances[key]

            constructor = self._registry.get(config.provider_name.lower())
            if constructor is None:
                return None

            provider = constructor(config)
            self._instances[key] = provider
            return provider

    async def close_all(self) -> None:
        """Gracefully shut down all provider connections."""
        with self._lock:
            providers = list(self._instances.values())
            self._instances.clear()
        for provider in providers:
            await provider.close()
