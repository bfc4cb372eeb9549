"""Tests for messageflow/providers/base.py: the shared provider contract."""

import asyncio

import pytest

from messageflow.errors import ProviderError
from messageflow.providers.base import ANALYZE_PROMPT, HEALTH_PROMPT

from tests.conftest import FakeProvider, make_config, vendor_error


@pytest.fixture
def provider():
    return FakeProvider(make_config(cost_per_1k_input=1.0, cost_per_1k_output=2.0))


class TestAnalyze:

    async def test_parses_wrapped_json(self, provider):
        provider.text = 'Here is the analysis:\n```json\n{"is_important": true, "priority": "high"}\n```'
        result = await provider.analyze("server is down")
        assert result.is_important is True
        assert result.priority == "high"
        assert provider.prompts == [ANALYZE_PROMPT + "server is down"]

    async def test_non_object_raises_502(self, provider):
        provider.text = "[1, 2]"
        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze("hi")
        assert exc_info.value.status_code == 502

    async def test_vendor_error_retried_then_raised(self, provider, no_backoff):
        provider.error = vendor_error(503)
        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze("hi")
        assert exc_info.value.status_code == 503
        assert len(provider.prompts) == 3

    async def test_unexpected_error_wrapped_as_502(self, provider, no_backoff):
        provider.error = KeyError("choices")
        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze("hi")
        assert exc_info.value.status_code == 502

    async def test_timeout_raises_504(self, provider):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        provider.timeout = 0.05
        provider._complete = hang
        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze("hi")
        assert exc_info.value.status_code == 504


class TestSummarizeAndActions:

    async def test_summarize(self, provider):
        provider.text = '{"summary": "Launch slipped", "key_points": ["QA"], "action_items": []}'
        result = await provider.summarize(["first", "second"])
        assert result.summary == "Launch slipped"
        assert result.key_points == ["QA"]
        assert provider.prompts[0].endswith("first\nsecond")

    async def test_extract_actions(self, provider):
        provider.text = 'Actions: ["send invoice", "book call"]'
        assert await provider.extract_actions("text") == ["send invoice", "book call"]


class TestUsage:

    async def test_success_updates_stats(self, provider):
        await provider.analyze("hi")
        await provider.analyze("again")
        usage = provider.get_usage()
        assert usage.total_requests == 2
        assert usage.successful_requests == 2
        assert usage.failed_requests == 0
        assert usage.total_tokens == 300
        # 100 input tokens at 1.0/1k + 50 output tokens at 2.0/1k, twice
        assert usage.total_cost == pytest.approx(0.4)

    async def test_last_record(self, provider):
        await provider.summarize(["x"])
        record = provider.last_usage_record()
        assert record.success is True
        assert record.feature == "summarize"
        assert record.input_tokens == 100
        assert record.output_tokens == 50
        assert record.total_tokens == 150

    async def test_failure_counted(self, provider, no_backoff):
        provider.error = vendor_error()
        with pytest.raises(ProviderError):
            await provider.extract_actions("x")
        usage = provider.get_usage()
        assert usage.total_requests == 1
        assert usage.failed_requests == 1
        record = provider.last_usage_record()
        assert record.success is False
        assert record.feature == "extract_actions"
        assert "503" in record.error_message

    async def test_get_usage_returns_copy(self, provider):
        provider.get_usage().total_requests = 99
        assert provider.get_usage().total_requests == 0


class TestHealthCheck:

    async def test_ok(self, provider):
        result = await provider.health_check()
        assert result.status == "ok"
        assert result.latency_ms >= 0
        assert provider.prompts == [HEALTH_PROMPT]

    async def test_error_reported_not_raised(self, provider):
        provider.error = vendor_error(401)
        result = await provider.health_check()
        assert result.status == "error"
        assert "401" in result.error_message
        # Health checks are never retried
        assert len(provider.prompts) == 1

    async def test_health_check_not_counted_as_usage(self, provider):
        await provider.health_check()
        assert provider.get_usage().total_requests == 0
