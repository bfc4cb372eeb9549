"""LLM service: the entry point request handlers and workers call.

Wraps router lookups with uniform usage accounting: every call writes a
usage record, whether it succeeded or not. Failing to write that record
is logged and never reaches the caller.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any

from messageflow.errors import HealthCheckError, ProviderNotFoundError, RateLimitExceededError
from messageflow.logging.audit import get_audit_logger
from messageflow.providers.base import LLMProvider
from messageflow.providers.models import (
    AnalysisResult,
    HealthCheckResult,
    SummaryResult,
    UsageRecord,
    UsageStats,
)
from messageflow.routing.router import FallbackAnalysis, ProviderRouter
from messageflow.security.ratelimit import SlidingWindowLimiter, provider_key
from messageflow.storage.store import ProviderStore
from messageflow.storage.usage import summarize_usage, usage_breakdown

HEALTH_WINDOW = 20  # checks averaged in the health overview


class LLMService:

    def __init__(
        self,
        router: ProviderRouter,
        store: ProviderStore,
        limiter: SlidingWindowLimiter | None = None,
    ):
        self.router = router
        self.store = store
        self.limiter = limiter

    async def analyze(
        self, tenant_id: int, provider_id: int, message: str, message_id: int | None = None
    ) -> AnalysisResult:
        provider = await self.router.get_provider(tenant_id, provider_id)
        return await self._invoke(
            tenant_id, provider_id, provider, "analyze", lambda: provider.analyze(message), message_id
        )

    async def summarize(self, tenant_id: int, provider_id: int, messages: list[str]) -> SummaryResult:
        provider = await self.router.get_provider(tenant_id, provider_id)
        return await self._invoke(
            tenant_id, provider_id, provider, "summarize", lambda: provider.summarize(messages)
        )

    async def extract_actions(self, tenant_id: int, provider_id: int, text: str) -> list[str]:
        provider = await self.router.get_provider(tenant_id, provider_id)
        return await self._invoke(
            tenant_id, provider_id, provider, "extract_actions", lambda: provider.extract_actions(text)
        )

    async def analyze_with_fallback(
        self, tenant_id: int, message: str, message_id: int | None = None
    ) -> FallbackAnalysis:
        """Analyze with the first provider that succeeds.

        A degraded outcome (keyword heuristic) is returned, not raised;
        check `outcome.degraded`.
        """
        start = time.perf_counter()
        outcome = await self.router.analyze_with_fallback(tenant_id, message)
        if outcome.provider is not None:
            record = _usage_from_provider(outcome.provider, start, None, "analyze")
            config = outcome.provider.get_config()
            await self._record_usage(
                tenant_id, outcome.provider_id, message_id, record,
                config.cost_per_1k_input, config.cost_per_1k_output,
            )
        else:
            record = UsageRecord(
                latency_ms=_elapsed_ms(start),
                success=False,
                error_message=str(outcome.error),
                feature="analyze",
            )
            await self._record_usage(tenant_id, None, message_id, record, 0.0, 0.0)
        return outcome

    async def health_check(self, tenant_id: int, provider_id: int) -> HealthCheckResult:
        provider = await self.router.get_provider(tenant_id, provider_id)
        result = await provider.health_check()
        if result is None:
            raise HealthCheckError("no health result")
        return result

    async def get_usage(self, tenant_id: int, provider_id: int | None = None) -> UsageStats:
        """Totals from the usage log for one provider, or the whole tenant."""
        if provider_id is not None:
            await self._require_provider(tenant_id, provider_id)
        return summarize_usage(await self.store.list_usage(tenant_id, provider_id))

    async def usage_by_provider(self, tenant_id: int) -> list[dict]:
        """Per-provider totals. Degraded fallback calls appear under provider_id None."""
        names = {c.id: c.provider_name for c in await self.store.list_all_providers(tenant_id)}
        rows = usage_breakdown(await self.store.list_usage(tenant_id), "provider_id")
        for row in rows:
            row["provider"] = names.get(row["provider_id"], "")
        return rows

    async def usage_by_feature(self, tenant_id: int) -> list[dict]:
        return usage_breakdown(await self.store.list_usage(tenant_id), "feature_used")

    async def health_history(self, tenant_id: int, provider_id: int, limit: int = 20) -> list[HealthCheckResult]:
        await self._require_provider(tenant_id, provider_id)
        return await self.store.list_health(tenant_id, provider_id, limit=limit)

    async def health_overview(self, tenant_id: int) -> list[dict]:
        """Current health summary per provider, with latency averaged over recent checks."""
        items = []
        for config in await self.store.list_all_providers(tenant_id):
            history = await self.store.list_health(tenant_id, config.id, limit=HEALTH_WINDOW)
            latency = sum(r.latency_ms for r in history) / len(history) if history else 0.0
            items.append({
                "provider_id": config.id,
                "provider": config.provider_name,
                "model": config.model_name,
                "status": config.health_status,
                "last_check": config.last_health_check,
                "avg_latency_ms": round(latency, 2),
            })
        return items

    async def _require_provider(self, tenant_id: int, provider_id: int) -> None:
        """Any configured provider, active or not. Records outlive deactivation."""
        ids = {c.id for c in await self.store.list_all_providers(tenant_id)}
        if provider_id not in ids:
            raise ProviderNotFoundError(tenant_id, provider_id)

    async def _invoke(
        self,
        tenant_id: int,
        provider_id: int,
        provider: LLMProvider,
        feature: str,
        call: Callable[[], Awaitable[Any]],
        message_id: int | None = None,
    ):
        config = provider.get_config()
        cost_in, cost_out = config.cost_per_1k_input, config.cost_per_1k_output

        if self.limiter is not None:
            limit = await self.limiter.check(
                provider_key(tenant_id, provider_id), config.max_requests_per_minute
            )
            if not limit.allowed:
                error = RateLimitExceededError(provider_id, limit.reset_seconds)
                record = UsageRecord(success=False, error_message=str(error), feature=feature)
                await self._record_usage(tenant_id, provider_id, message_id, record, cost_in, cost_out)
                raise error

        start = time.perf_counter()
        try:
            result = await call()
        except Exception as e:
            record = _usage_from_provider(provider, start, e, feature)
            await self._record_usage(tenant_id, provider_id, message_id, record, cost_in, cost_out)
            raise

        record = _usage_from_provider(provider, start, None, feature)
        await self._record_usage(tenant_id, provider_id, message_id, record, cost_in, cost_out)
        return result

    async def _record_usage(
        self,
        tenant_id: int,
        provider_id: int | None,
        message_id: int | None,
        record: UsageRecord,
        cost_in: float,
        cost_out: float,
    ) -> None:
        logger = get_audit_logger()
        try:
            await self.store.insert_usage(tenant_id, provider_id, message_id, record, cost_in, cost_out)
        except Exception as e:
            logger.error(
                "Failed to record usage",
                extra={"audit_data": {
                    "tenant_id": tenant_id,
                    "provider_id": provider_id,
                    "feature": record.feature,
                    "error": str(e),
                }},
            )
            return
        logger.info(
            "LLM call",
            extra={"audit_data": {
                "tenant_id": tenant_id,
                "provider_id": provider_id,
                "message_id": message_id,
                "feature": record.feature,
                "success": record.success,
                "input_tokens": record.input_tokens,
                "output_tokens": record.output_tokens,
                "latency_ms": record.latency_ms,
                "cost": record.total_cost(cost_in, cost_out),
                "error": record.error_message,
            }},
        )


def _usage_from_provider(
    provider: LLMProvider, start: float, error: Exception | None, feature: str
) -> UsageRecord:
    """Build the usage record for a call that just returned.

    Must run before the next await so the provider's last record still
    belongs to this call.
    """
    record = provider.last_usage_record()
    record.feature = feature
    if error is not None:
        record.success = False
        record.error_message = str(error)
    if record.input_tokens == 0 and record.output_tokens == 0:
        record.latency_ms = _elapsed_ms(start)
    return record


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
