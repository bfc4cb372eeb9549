"""Resolve tenant provider requests to live provider instances.

Lookups are cached per (tenant, provider id) for a short TTL so that
hot paths do not hit the store on every call. Entries are never
invalidated when a config changes: an updated or deleted provider,
including a rotated key, keeps serving from cache until its entry
expires.
"""

import threading
import time
from dataclasses import dataclass

from messageflow.errors import (
    AllProvidersFailedError,
    ProviderNotFoundError,
    ProviderNotSupportedError,
)
from messageflow.logging.audit import get_audit_logger
from messageflow.providers.base import LLMProvider
from messageflow.providers.factory import ProviderFactory
from messageflow.providers.models import AnalysisResult
from messageflow.routing.fallback import fallback_analysis
from messageflow.security.ratelimit import SlidingWindowLimiter, provider_key
from messageflow.storage.store import ProviderStore

DEFAULT_CACHE_TTL = 300.0  # 5 minutes
DEFAULT_PROVIDER = 0  # cache slot for a tenant's default provider


class TTLCache:
    """Lock-guarded mapping whose entries expire `ttl` seconds after set."""

    def __init__(self, ttl: float = DEFAULT_CACHE_TTL):
        self.ttl = ttl
        self._items: dict[tuple[int, int], tuple[LLMProvider, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: tuple[int, int]) -> LLMProvider | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None
            provider, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._items[key]
                return None
            return provider

    def set(self, key: tuple[int, int], provider: LLMProvider) -> None:
        with self._lock:
            self._items[key] = (provider, time.monotonic() + self.ttl)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass
class FallbackAnalysis:
    """Outcome of a fallback scan.

    When `error` is set the result came from the keyword heuristic and
    `provider` is None; callers decide whether that is acceptable.
    """

    result: AnalysisResult
    provider: LLMProvider | None = None
    provider_id: int | None = None
    error: Exception | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class ProviderRouter:

    def __init__(
        self,
        factory: ProviderFactory,
        store: ProviderStore,
        cache: TTLCache | None = None,
        limiter: SlidingWindowLimiter | None = None,
    ):
        self.factory = factory
        self.store = store
        self.cache = cache if cache is not None else TTLCache()
        self.limiter = limiter

    async def get_provider(self, tenant_id: int, provider_id: int) -> LLMProvider:
        """Provider for an explicit id.

        Ids start at 1; id 0 is the cache slot of the tenant default.

        Raises:
            ProviderNotFoundError: no active config with that id.
            ProviderNotSupportedError: the config names an unknown vendor.
        """
        if provider_id <= DEFAULT_PROVIDER:
            raise ProviderNotFoundError(tenant_id, provider_id)
        key = (tenant_id, provider_id)
        provider = self.cache.get(key)
        if provider is not None:
            return provider

        config = await self.store.get_provider_by_id(tenant_id, provider_id)
        if config is None:
            raise ProviderNotFoundError(tenant_id, provider_id)
        provider = self.factory.create_provider(config)
        if provider is None:
            raise ProviderNotSupportedError(config.provider_name)
        self.cache.set(key, provider)
        return provider

    async def get_default_provider(self, tenant_id: int) -> LLMProvider:
        key = (tenant_id, DEFAULT_PROVIDER)
        provider = self.cache.get(key)
        if provider is not None:
            return provider

        config = await self.store.get_default_provider(tenant_id)
        if config is None:
            raise ProviderNotFoundError(tenant_id)
        provider = self.factory.create_provider(config)
        if provider is None:
            raise ProviderNotSupportedError(config.provider_name)
        self.cache.set(key, provider)
        return provider

    async def get_provider_for_feature(self, tenant_id: int, feature: str) -> LLMProvider:
        """Feature-specific routing is not configured yet; every feature uses the default."""
        return await self.get_default_provider(tenant_id)

    async def analyze_with_fallback(self, tenant_id: int, message: str) -> FallbackAnalysis:
        """Try every active provider in order, default first, then by id.

        Never raises for vendor failures: if no provider succeeds the
        keyword heuristic result is returned with `error` set.
        """
        logger = get_audit_logger()
        try:
            configs = await self.store.list_providers(tenant_id)
        except Exception as e:
            logger.error(
                "Could not load providers for fallback scan",
                extra={"audit_data": {"tenant_id": tenant_id, "error": str(e)}},
            )
            return FallbackAnalysis(result=fallback_analysis(message), error=e)

        attempted = []
        for config in configs:
            provider = self.factory.create_provider(config)
            if provider is None:
                continue
            if self.limiter is not None:
                limit = await self.limiter.check(
                    provider_key(tenant_id, config.id), config.max_requests_per_minute
                )
                if not limit.allowed:
                    logger.info(
                        "Skipping rate-limited provider",
                        extra={"audit_data": {"tenant_id": tenant_id, "provider_id": config.id}},
                    )
                    continue

            attempted.append(config.id)
            try:
                result = await provider.analyze(message)
            except Exception as e:
                logger.warning(
                    "Fallback candidate failed",
                    extra={"audit_data": {
                        "tenant_id": tenant_id,
                        "provider_id": config.id,
                        "provider": config.provider_name,
                        "error": str(e),
                    }},
                )
                continue
            return FallbackAnalysis(result=result, provider=provider, provider_id=config.id)

        logger.warning(
            "All providers failed, using keyword fallback",
            extra={"audit_data": {"tenant_id": tenant_id, "attempted": attempted}},
        )
        return FallbackAnalysis(
            result=fallback_analysis(message),
            error=AllProvidersFailedError(attempted),
        )
