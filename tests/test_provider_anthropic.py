"""Tests for messageflow/providers/anthropic.py: Claude Messages API adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from messageflow.errors import ProviderError
from messageflow.providers.anthropic import ClaudeProvider
from messageflow.providers.models import ProviderConfig


def _mock_client(provider, status_code=200, body=None) -> AsyncMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {}
    response.text = "error body"
    mock_client = AsyncMock()
    mock_client.is_closed = False
    mock_client.post.return_value = response
    provider._client = mock_client
    return mock_client


@pytest.fixture
def provider():
    return ClaudeProvider(ProviderConfig(
        id=2, provider_name="claude", model_name="claude-3-5-haiku-latest", api_key="sk-ant",
    ))


class TestClaudeProvider:

    def test_timeouts(self, provider):
        assert provider.timeout == 60.0
        assert provider._retrier.delay == 0.5

    async def test_summarize_success(self, provider, override_settings):
        override_settings(ANTHROPIC_BASE_URL="https://api.anthropic.com")
        mock_client = _mock_client(provider, body={
            "content": [{"type": "text", "text": '{"summary": "All set", "key_points": ["a"]}'}],
            "usage": {"input_tokens": 40, "output_tokens": 9},
        })

        result = await provider.summarize(["hello", "bye"])
        assert result.summary == "All set"

        call_kwargs = mock_client.post.call_args
        assert call_kwargs.args[0] == "https://api.anthropic.com/v1/messages"
        headers = call_kwargs.kwargs["headers"]
        assert headers["x-api-key"] == "sk-ant"
        assert headers["anthropic-version"] == "2023-06-01"
        assert call_kwargs.kwargs["json"]["model"] == "claude-3-5-haiku-latest"

        record = provider.last_usage_record()
        assert record.input_tokens == 40
        assert record.output_tokens == 9

    async def test_skips_non_text_blocks(self, provider):
        _mock_client(provider, body={
            "content": [{"type": "tool_use", "id": "x"}, {"type": "text", "text": '["call Bob"]'}],
        })
        assert await provider.extract_actions("call Bob") == ["call Bob"]

    async def test_empty_content_raises_502(self, provider):
        _mock_client(provider, body={"content": []})
        with pytest.raises(ProviderError) as exc_info:
            await provider._complete("x", max_tokens=10, temperature=0, json_mode=True)
        assert exc_info.value.status_code == 502

    async def test_auth_error_propagated(self, provider):
        _mock_client(provider, status_code=401)
        with pytest.raises(ProviderError) as exc_info:
            await provider._complete("x", max_tokens=10, temperature=0, json_mode=True)
        assert exc_info.value.status_code == 401
