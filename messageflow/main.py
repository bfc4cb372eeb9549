"""messageflow LLM service: FastAPI application entry point.

Exposes message analysis, summarization and action extraction backed by
each tenant's configured LLM providers, plus provider health and usage.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from messageflow.container import Container, close_container, get_container
from messageflow.errors import (
    HealthCheckError,
    ProviderError,
    ProviderNotFoundError,
    ProviderNotSupportedError,
    RateLimitExceededError,
)
from messageflow.logging.audit import (
    RequestTimer,
    bind_context,
    generate_request_id,
    get_audit_logger,
    setup_logging,
)
from messageflow.providers.models import ProviderConfig
from messageflow.security.auth import Tenant, verify_tenant
from messageflow.storage.crypto import SecretError
from messageflow.workers.queue import QueueMessage

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Service started")
    yield
    await close_container()
    get_audit_logger().info("Service stopped")


app = FastAPI(
    title="messageflow LLM service",
    description="Multi-tenant LLM provider routing for message analysis",
    version=VERSION,
    lifespan=lifespan,
)


# --- Request models ---


class ProviderCreate(BaseModel):
    provider_name: str
    model_name: str
    api_key: str = ""
    display_name: str = ""
    base_url: str = ""
    azure_endpoint: str = ""
    azure_deployment: str = ""
    azure_api_version: str = ""
    temperature: float = 0.2
    max_tokens: int = 1024
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0
    max_requests_per_minute: int = 0
    max_requests_per_day: int = 0
    monthly_budget: float = 0.0
    is_active: bool = True
    is_default: bool = False


class AnalyzeRequest(BaseModel):
    message: str
    provider_id: int | None = Field(None, gt=0)  # None = fallback scan over all providers
    message_id: int | None = None


class BatchItem(BaseModel):
    message_id: int
    content: str


class BatchAnalyzeRequest(BaseModel):
    messages: list[BatchItem] = Field(default_factory=list)


class SummarizeRequest(BaseModel):
    provider_id: int = Field(gt=0)
    messages: list[str]


class ExtractActionsRequest(BaseModel):
    provider_id: int = Field(gt=0)
    text: str


# --- Error mapping ---


@app.exception_handler(ProviderNotFoundError)
async def _not_found(request: Request, exc: ProviderNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ProviderNotSupportedError)
async def _not_supported(request: Request, exc: ProviderNotSupportedError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RateLimitExceededError)
async def _rate_limited(request: Request, exc: RateLimitExceededError):
    return JSONResponse(
        status_code=429,
        content={"error": str(exc)},
        headers={"Retry-After": str(max(1, int(exc.reset_seconds)))},
    )


@app.exception_handler(ProviderError)
async def _provider_error(request: Request, exc: ProviderError):
    status = exc.status_code if exc.status_code >= 400 else 502
    return JSONResponse(status_code=status, content={"error": exc.detail})


@app.exception_handler(HealthCheckError)
async def _health_error(request: Request, exc: HealthCheckError):
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.exception_handler(SecretError)
async def _secret_error(request: Request, exc: SecretError):
    get_audit_logger().error("Secret handling failed", extra={"audit_data": {"error": str(exc)}})
    return JSONResponse(status_code=500, content={"error": "Provider secret could not be processed"})


# --- Endpoints ---


def _public(config: ProviderConfig) -> dict:
    data = config.to_dict()
    data.pop("api_key", None)
    return data


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/v1/providers")
async def list_providers(
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    configs = await container.store.list_all_providers(tenant.tenant_id)
    return {"data": [_public(c) for c in configs]}


@app.post("/v1/providers", status_code=201)
async def create_provider(
    body: ProviderCreate,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    if not container.factory.supports(body.provider_name):
        raise ProviderNotSupportedError(body.provider_name)

    config = ProviderConfig(id=0, **body.model_dump())
    saved = await container.store.save_provider(tenant.tenant_id, config)
    container.health_scheduler.ensure_tenant(tenant.tenant_id)

    get_audit_logger().info(
        "Provider saved",
        extra={"audit_data": {
            "provider_id": saved.id,
            "provider": saved.provider_name,
            "model": saved.model_name,
            "is_default": saved.is_default,
        }},
    )
    return _public(saved)


@app.put("/v1/providers/{provider_id}")
async def update_provider(
    provider_id: int,
    body: ProviderCreate,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    """Replace a provider's settings in place. An empty api_key keeps the stored one.

    Cached instances keep serving the old settings until their router
    cache entry expires.
    """
    if not container.factory.supports(body.provider_name):
        raise ProviderNotSupportedError(body.provider_name)

    configs = await container.store.list_all_providers(tenant.tenant_id)
    existing = next((c for c in configs if c.id == provider_id), None)
    if existing is None:
        raise ProviderNotFoundError(tenant.tenant_id, provider_id)

    config = ProviderConfig(
        id=provider_id,
        health_status=existing.health_status,
        last_health_check=existing.last_health_check,
        **body.model_dump(),
    )
    saved = await container.store.save_provider(tenant.tenant_id, config)

    get_audit_logger().info(
        "Provider updated",
        extra={"audit_data": {
            "provider_id": saved.id,
            "provider": saved.provider_name,
            "model": saved.model_name,
            "is_default": saved.is_default,
            "key_rotated": bool(body.api_key),
        }},
    )
    return _public(saved)


@app.delete("/v1/providers/{provider_id}", status_code=204)
async def delete_provider(
    provider_id: int,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    if not await container.store.delete_provider(tenant.tenant_id, provider_id):
        raise ProviderNotFoundError(tenant.tenant_id, provider_id)


@app.get("/v1/providers/{provider_id}/health")
async def provider_health(
    provider_id: int,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    result = await container.service.health_check(tenant.tenant_id, provider_id)
    return result.to_dict()


@app.get("/v1/providers/{provider_id}/health/history")
async def provider_health_history(
    provider_id: int,
    limit: int = Query(20, ge=1, le=500),
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    history = await container.service.health_history(tenant.tenant_id, provider_id, limit=limit)
    return {"data": [r.to_dict() for r in history]}


@app.get("/v1/providers/{provider_id}/usage")
async def provider_usage(
    provider_id: int,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    stats = await container.service.get_usage(tenant.tenant_id, provider_id)
    return stats.to_dict()


@app.get("/v1/health")
async def health_overview(
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    return {"data": await container.service.health_overview(tenant.tenant_id)}


@app.get("/v1/usage")
async def tenant_usage(
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    stats = await container.service.get_usage(tenant.tenant_id)
    return stats.to_dict()


@app.get("/v1/usage/by-provider")
async def usage_by_provider(
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    return {"data": await container.service.usage_by_provider(tenant.tenant_id)}


@app.get("/v1/usage/by-feature")
async def usage_by_feature(
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    return {"data": await container.service.usage_by_feature(tenant.tenant_id)}


@app.post("/v1/analyze")
async def analyze(
    body: AnalyzeRequest,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    rid = generate_request_id()
    bind_context(request_id=rid)
    container.health_scheduler.ensure_tenant(tenant.tenant_id)

    with RequestTimer() as timer:
        if body.provider_id is not None:
            result = await container.service.analyze(
                tenant.tenant_id, body.provider_id, body.message, body.message_id
            )
            provider_id, degraded = body.provider_id, False
        else:
            outcome = await container.service.analyze_with_fallback(
                tenant.tenant_id, body.message, body.message_id
            )
            result, provider_id, degraded = outcome.result, outcome.provider_id, outcome.degraded

    get_audit_logger().info(
        "Message analyzed",
        extra={"audit_data": {
            "provider_id": provider_id,
            "degraded": degraded,
            "latency_ms": timer.elapsed_ms,
        }},
    )
    return JSONResponse(
        content={"result": result.to_dict(), "provider_id": provider_id, "degraded": degraded},
        headers={"X-Request-Id": rid},
    )


@app.post("/v1/analyze/batch", status_code=202)
async def analyze_batch(
    body: BatchAnalyzeRequest,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    for item in body.messages:
        await container.queue.enqueue(QueueMessage(
            tenant_id=tenant.tenant_id,
            message_id=item.message_id,
            content=item.content,
        ))
    if body.messages:
        container.worker_scheduler.ensure_tenant(tenant.tenant_id)
    return {"queued": len(body.messages)}


@app.post("/v1/summarize")
async def summarize(
    body: SummarizeRequest,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    result = await container.service.summarize(tenant.tenant_id, body.provider_id, body.messages)
    return result.to_dict()


@app.post("/v1/extract-actions")
async def extract_actions(
    body: ExtractActionsRequest,
    tenant: Tenant = Depends(verify_tenant),
    container: Container = Depends(get_container),
):
    actions = await container.service.extract_actions(tenant.tenant_id, body.provider_id, body.text)
    return {"actions": actions}
