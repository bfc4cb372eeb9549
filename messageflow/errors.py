"""Error taxonomy for provider routing.

Configuration errors (not found, not supported) surface immediately.
ProviderError wraps a vendor failure after retries are exhausted.
AllProvidersFailedError is informational: it travels alongside a
degraded fallback result rather than replacing it.
"""


class LLMError(Exception):
    """Base class for routing and provider errors."""


class ProviderNotFoundError(LLMError):
    def __init__(self, tenant_id: int, provider_id: int | None = None):
        self.tenant_id = tenant_id
        self.provider_id = provider_id
        if provider_id:
            msg = f"provider {provider_id} not found for tenant {tenant_id}"
        else:
            msg = f"default provider not found for tenant {tenant_id}"
        super().__init__(msg)


class ProviderNotSupportedError(LLMError):
    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"provider not supported: {provider_name}")


class ProviderError(LLMError):
    """A vendor call failed. status_code mirrors the upstream (or gateway) status."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


class AllProvidersFailedError(LLMError):
    def __init__(self, attempted: list[int]):
        self.attempted = attempted
        super().__init__("all providers failed")


class HealthCheckError(LLMError):
    pass


class RateLimitExceededError(LLMError):
    def __init__(self, provider_id: int, reset_seconds: float):
        self.provider_id = provider_id
        self.reset_seconds = reset_seconds
        super().__init__(f"rate limit exceeded for provider {provider_id}")
