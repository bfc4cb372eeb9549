"""API key authentication for tenants.

Validates the X-API-Key header against the configured tenant keys and
resolves the tenant every downstream lookup is scoped to.
"""

import hmac
from dataclasses import dataclass

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from messageflow.config.settings import get_settings
from messageflow.logging.audit import bind_context

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass
class Tenant:
    tenant_id: int


async def verify_tenant(api_key: str | None = Security(api_key_header)) -> Tenant:
    """FastAPI dependency that maps the caller's API key to a tenant."""
    if api_key is None:
        raise HTTPException(status_code=401, detail="Missing API key")

    match: int | None = None
    for valid_key, tenant_id in get_settings().tenant_keys.items():
        # Always iterate all keys to maintain constant-time behavior
        if hmac.compare_digest(api_key, valid_key):
            match = tenant_id

    if match is None:
        raise HTTPException(status_code=403, detail="Invalid API key")

    bind_context(tenant_id=match)
    return Tenant(tenant_id=match)
