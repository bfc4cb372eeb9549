"""Periodic provider health probing."""

import asyncio

from messageflow.errors import LLMError
from messageflow.logging.audit import get_audit_logger
from messageflow.providers.base import LLMProvider
from messageflow.providers.models import HealthCheckResult
from messageflow.routing.router import ProviderRouter
from messageflow.storage.store import ProviderStore
from messageflow.workers.supervisor import TenantSupervisor

DEFAULT_INTERVAL = 300.0  # 5 minutes
SLOW_THRESHOLD_MS = 3000.0
FAILURE_THRESHOLD = 3


class HealthMonitor:
    """Checks every active provider of a tenant and records the outcome.

    A provider whose most recent `failure_threshold` checks are all
    non-ok is marked "unhealthy", a harder state than a single "error".
    Storage failures are logged and never stop the loop.
    """

    def __init__(
        self,
        router: ProviderRouter,
        store: ProviderStore,
        slow_threshold_ms: float = SLOW_THRESHOLD_MS,
        failure_threshold: int = FAILURE_THRESHOLD,
    ):
        self.router = router
        self.store = store
        self.slow_threshold_ms = slow_threshold_ms
        self.failure_threshold = failure_threshold

    async def run(self, tenant_id: int, interval: float = DEFAULT_INTERVAL) -> None:
        """Check now, then every `interval` seconds until cancelled."""
        while True:
            try:
                await self.run_once(tenant_id)
            except Exception:
                get_audit_logger().exception(
                    "Health sweep failed",
                    extra={"audit_data": {"tenant_id": tenant_id}},
                )
            await asyncio.sleep(interval)

    async def run_once(self, tenant_id: int) -> dict[int, str]:
        """One sweep over the tenant's providers. Returns status per provider id."""
        logger = get_audit_logger()
        try:
            provider_ids = await self.store.list_provider_ids(tenant_id)
        except Exception as e:
            logger.error(
                "Health sweep could not list providers",
                extra={"audit_data": {"tenant_id": tenant_id, "error": str(e)}},
            )
            return {}

        statuses = {}
        for provider_id in provider_ids:
            try:
                provider = await self.router.get_provider(tenant_id, provider_id)
            except LLMError as e:
                logger.warning(
                    "Health sweep skipped provider",
                    extra={"audit_data": {"tenant_id": tenant_id, "provider_id": provider_id, "error": str(e)}},
                )
                continue
            except Exception as e:
                logger.error(
                    "Health sweep could not load provider",
                    extra={"audit_data": {"tenant_id": tenant_id, "provider_id": provider_id, "error": str(e)}},
                )
                continue
            statuses[provider_id] = await self.check_provider(tenant_id, provider_id, provider)
        return statuses

    async def check_provider(self, tenant_id: int, provider_id: int, provider: LLMProvider) -> str:
        logger = get_audit_logger()
        error = None
        try:
            result = await provider.health_check()
        except Exception as e:
            result, error = None, e

        check = self._classify(result, error)
        try:
            await self.store.insert_health(tenant_id, provider_id, check)
        except Exception as e:
            logger.error(
                "Failed to record health check",
                extra={"audit_data": {"tenant_id": tenant_id, "provider_id": provider_id, "error": str(e)}},
            )
            return check.status

        if check.status == "error":
            await self._maybe_mark_unhealthy(tenant_id, provider_id)
        return check.status

    def _classify(self, result: HealthCheckResult | None, error: Exception | None) -> HealthCheckResult:
        if error is not None or result is None:
            return HealthCheckResult(
                status="error",
                error_message=str(error) if error is not None else "no health result",
            )
        if result.status == "error":
            status = "error"
        elif result.latency_ms > self.slow_threshold_ms:
            status = "slow"
        else:
            status = "ok"
        return HealthCheckResult(
            status=status,
            latency_ms=result.latency_ms,
            estimated_cost=result.estimated_cost,
            error_message=result.error_message,
            timestamp=result.timestamp,
        )

    async def _maybe_mark_unhealthy(self, tenant_id: int, provider_id: int) -> None:
        logger = get_audit_logger()
        try:
            statuses = await self.store.recent_health_statuses(
                tenant_id, provider_id, limit=self.failure_threshold
            )
            failures = sum(1 for status in statuses if status != "ok")
            if failures < self.failure_threshold:
                return
            await self.store.set_provider_health(tenant_id, provider_id, "unhealthy")
        except Exception as e:
            logger.error(
                "Failed to update provider health",
                extra={"audit_data": {"tenant_id": tenant_id, "provider_id": provider_id, "error": str(e)}},
            )
            return
        logger.warning(
            "Provider marked unhealthy",
            extra={"audit_data": {"tenant_id": tenant_id, "provider_id": provider_id, "failures": failures}},
        )


class HealthScheduler(TenantSupervisor):
    """Runs one HealthMonitor loop per tenant."""

    name = "health"

    def __init__(self, monitor: HealthMonitor, interval: float = DEFAULT_INTERVAL):
        super().__init__()
        self.monitor = monitor
        self.interval = interval

    async def _run(self, tenant_id: int) -> None:
        await self.monitor.run(tenant_id, self.interval)
