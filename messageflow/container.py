"""Process-wide wiring of the routing components."""

from dataclasses import dataclass

from messageflow.config.settings import get_settings
from messageflow.providers.factory import ProviderFactory
from messageflow.routing.router import ProviderRouter, TTLCache
from messageflow.routing.service import LLMService
from messageflow.security.ratelimit import SlidingWindowLimiter
from messageflow.storage.factory import get_provider_store
from messageflow.storage.store import ProviderStore
from messageflow.workers.analysis import AnalysisWorker, WorkerScheduler
from messageflow.workers.health import HealthMonitor, HealthScheduler
from messageflow.workers.queue import AnalysisQueue


@dataclass
class Container:
    store: ProviderStore
    factory: ProviderFactory
    limiter: SlidingWindowLimiter
    router: ProviderRouter
    service: LLMService
    queue: AnalysisQueue
    health_scheduler: HealthScheduler
    worker_scheduler: WorkerScheduler

    async def close(self) -> None:
        await self.health_scheduler.shutdown()
        await self.worker_scheduler.shutdown()
        await self.factory.close_all()
        await self.queue.close()


def build_container(
    store: ProviderStore | None = None,
    queue: AnalysisQueue | None = None,
) -> Container:
    settings = get_settings()
    store = store if store is not None else get_provider_store()
    queue = queue if queue is not None else AnalysisQueue.from_url(settings.redis_url)

    factory = ProviderFactory()
    limiter = SlidingWindowLimiter()
    router = ProviderRouter(factory, store, cache=TTLCache(settings.router_cache_ttl), limiter=limiter)
    service = LLMService(router, store, limiter=limiter)

    monitor = HealthMonitor(
        router,
        store,
        slow_threshold_ms=settings.health_slow_threshold_ms,
        failure_threshold=settings.health_failure_threshold,
    )
    worker = AnalysisWorker(queue, service, store, batch_size=settings.worker_batch_size)

    return Container(
        store=store,
        factory=factory,
        limiter=limiter,
        router=router,
        service=service,
        queue=queue,
        health_scheduler=HealthScheduler(monitor, interval=settings.health_check_interval),
        worker_scheduler=WorkerScheduler(worker),
    )


_container: Container | None = None


def get_container() -> Container:
    """Get the container singleton, building it on first use."""
    global _container
    if _container is None:
        _container = build_container()
    return _container


async def close_container() -> None:
    global _container
    if _container is not None:
        await _container.close()
        _container = None
