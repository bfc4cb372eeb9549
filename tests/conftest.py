"""Shared fixtures for the messageflow test suite."""

import json
from unittest.mock import AsyncMock

import pytest

from messageflow.config.settings import get_settings
from messageflow.errors import ProviderError
from messageflow.providers.base import Completion, LLMProvider
from messageflow.providers.models import ProviderConfig

MASTER_KEY = "0123456789abcdef0123456789abcdef"

ANALYSIS_JSON = json.dumps({
    "is_important": True,
    "priority": "high",
    "reason": "customer escalation",
    "has_action": True,
    "action_required": "call back",
    "sentiment": "negative",
    "sentiment_score": -0.6,
    "topics": ["billing"],
    "confidence": 0.92,
})


class FakeProvider(LLMProvider):
    """Scripted provider: returns `text` or raises `error` on every call."""

    name = "fake"
    timeout = 5.0
    retry_delay = 0.01

    def __init__(self, config, text: str = ANALYSIS_JSON, error: Exception | None = None,
                 input_tokens: int = 100, output_tokens: int = 50):
        super().__init__(config)
        self.text = text
        self.error = error
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.prompts: list[str] = []

    async def _complete(self, prompt, *, max_tokens, temperature, json_mode):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return Completion(
            text=self.text,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )


def make_config(id: int = 1, provider_name: str = "fake", **kwargs) -> ProviderConfig:
    kwargs.setdefault("model_name", f"model-{id}")
    return ProviderConfig(id=id, provider_name=provider_name, **kwargs)


def vendor_error(status: int = 503) -> ProviderError:
    return ProviderError(status_code=status, detail=f"upstream returned {status}")


@pytest.fixture
def sample_config() -> ProviderConfig:
    """A typical active provider config for testing."""
    return ProviderConfig(
        id=1,
        provider_name="openai",
        model_name="gpt-4o-mini",
        api_key="sk-test-key-12345678",
        cost_per_1k_input=0.15,
        cost_per_1k_output=0.6,
        is_default=True,
    )


@pytest.fixture
def providers_json_file(tmp_path):
    """Create a temp providers.json file and return its path.

    Keys are stored as plaintext, like unencrypted seed data.
    """
    data = {
        "tenants": {
            "1": {
                "providers": [
                    {
                        "id": 1,
                        "provider_name": "openai",
                        "model_name": "gpt-4o-mini",
                        "api_key": "sk-seed-openai",
                        "is_default": True,
                    },
                    {
                        "id": 2,
                        "provider_name": "claude",
                        "model_name": "claude-3-5-haiku-latest",
                        "api_key": "sk-seed-claude",
                    },
                    {
                        "id": 3,
                        "provider_name": "cohere",
                        "model_name": "command-r",
                        "is_active": False,
                    },
                ]
            },
            "2": {
                "providers": [
                    {"id": 1, "provider_name": "bedrock", "model_name": "anthropic.claude-3-haiku"},
                ]
            },
        }
    }
    path = tmp_path / "providers.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(TENANT_API_KEYS="key1:1,key2:2", MASTER_KEY="...")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


@pytest.fixture
def no_backoff(monkeypatch):
    """Skip retry backoff sleeps. Returns the mock so tests can inspect delays."""
    sleep = AsyncMock()
    monkeypatch.setattr("messageflow.providers.retry.asyncio.sleep", sleep)
    return sleep
