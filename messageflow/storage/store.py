"""Provider store abstraction + JSON file implementation."""

import json
import os
from collections import deque
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone

from messageflow.logging.audit import get_audit_logger
from messageflow.providers.models import (
    AnalysisResult,
    HealthCheckResult,
    ProviderConfig,
    UsageRecord,
)
from messageflow.storage.crypto import SecretCipher, SecretError


class ProviderStore(ABC):
    """Tenant-scoped provider configuration and call records.

    Configs returned by the read methods carry a decrypted api_key.
    """

    def __init__(self, cipher: SecretCipher | None = None):
        self._cipher = cipher

    @abstractmethod
    async def list_providers(self, tenant_id: int) -> list[ProviderConfig]:
        """Active providers, default first, then ascending id."""
        ...

    @abstractmethod
    async def get_default_provider(self, tenant_id: int) -> ProviderConfig | None:
        ...

    @abstractmethod
    async def get_provider_by_id(self, tenant_id: int, provider_id: int) -> ProviderConfig | None:
        """Active provider by id. Returns None if not found."""
        ...

    @abstractmethod
    async def list_provider_ids(self, tenant_id: int) -> list[int]:
        ...

    @abstractmethod
    async def list_all_providers(self, tenant_id: int) -> list[ProviderConfig]:
        """Every provider including inactive ones, ascending id, without secrets."""
        ...

    @abstractmethod
    async def save_provider(self, tenant_id: int, config: ProviderConfig) -> ProviderConfig:
        """Insert or update a provider, encrypting its key.

        Setting is_default clears the flag on every other provider of the
        tenant in the same write. An empty api_key on update keeps the
        stored secret. Returns the saved config without its secret.
        """
        ...

    @abstractmethod
    async def delete_provider(self, tenant_id: int, provider_id: int) -> bool:
        ...

    @abstractmethod
    async def insert_usage(
        self,
        tenant_id: int,
        provider_id: int | None,
        message_id: int | None,
        record: UsageRecord,
        cost_in: float,
        cost_out: float,
    ) -> None:
        ...

    @abstractmethod
    async def list_usage(self, tenant_id: int, provider_id: int | None = None) -> list[dict]:
        """Usage rows oldest first, optionally for one provider."""
        ...

    @abstractmethod
    async def insert_health(self, tenant_id: int, provider_id: int, result: HealthCheckResult) -> None:
        """Append a check to history and overwrite the provider's health_status."""
        ...

    @abstractmethod
    async def list_health(self, tenant_id: int, provider_id: int, limit: int = 20) -> list[HealthCheckResult]:
        """Most recent checks, newest first."""
        ...

    async def recent_health_statuses(self, tenant_id: int, provider_id: int, limit: int = 3) -> list[str]:
        """Statuses of the most recent checks, newest first."""
        return [r.status for r in await self.list_health(tenant_id, provider_id, limit=limit)]

    @abstractmethod
    async def set_provider_health(self, tenant_id: int, provider_id: int, status: str) -> None:
        ...

    @abstractmethod
    async def save_analysis(self, tenant_id: int, message_id: int, result: AnalysisResult) -> None:
        ...

    def _encrypt_key(self, api_key: str) -> str:
        if not api_key:
            return ""
        if self._cipher is None:
            raise SecretError("MASTER_KEY is not configured; refusing to store a plaintext key")
        return self._cipher.encrypt(api_key)

    def _decrypt_config(self, config: ProviderConfig) -> ProviderConfig:
        """Copy of config with a plaintext key. Undecryptable values pass through."""
        if not config.api_key or self._cipher is None:
            return replace(config)
        try:
            return replace(config, api_key=self._cipher.decrypt(config.api_key))
        except SecretError as e:
            get_audit_logger().warning(
                "Provider key could not be decrypted, using stored value",
                extra={"audit_data": {"provider_id": config.id, "error": str(e)}},
            )
            return replace(config)


def usage_row(
    tenant_id: int,
    provider_id: int | None,
    message_id: int | None,
    record: UsageRecord,
    cost_in: float,
    cost_out: float,
) -> dict:
    """Flatten a usage record with the prices it was charged at."""
    return {
        "tenant_id": tenant_id,
        "provider_id": provider_id,
        "message_id": message_id,
        "input_tokens": record.input_tokens,
        "output_tokens": record.output_tokens,
        "total_tokens": record.total_tokens,
        "input_cost": record.input_cost(cost_in),
        "output_cost": record.output_cost(cost_out),
        "total_cost": record.total_cost(cost_in, cost_out),
        "cost_per_1k_input": cost_in,
        "cost_per_1k_output": cost_out,
        "response_time_ms": record.latency_ms,
        "success": record.success,
        "error_message": record.error_message,
        "feature_used": record.feature,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def _sort_key(config: ProviderConfig) -> tuple[bool, int]:
    return (not config.is_default, config.id)


class JSONProviderStore(ProviderStore):
    """File-backed provider configs. Reloads on mtime change.

    Meant for development and single-process deployments. Usage rows and
    per-provider health history are kept in memory, capped at `usage_limit`
    and `history_limit` entries; the oldest are dropped first.
    """

    def __init__(
        self,
        path: str,
        cipher: SecretCipher | None = None,
        usage_limit: int = 10_000,
        history_limit: int = 100,
    ):
        super().__init__(cipher)
        self._history_limit = history_limit
        self._path = path
        self._providers: dict[int, list[ProviderConfig]] = {}
        self._last_mtime: float = 0.0
        self.usage: deque[dict] = deque(maxlen=usage_limit)
        self.health: dict[tuple[int, int], deque[HealthCheckResult]] = {}
        self.analyses: dict[tuple[int, int], AnalysisResult] = {}
        self.important: dict[tuple[int, int], dict] = {}
        self._load()

    def _load(self) -> None:
        """Load provider configs from the JSON file."""
        try:
            mtime = os.path.getmtime(self._path)
        except OSError:
            return

        if mtime == self._last_mtime:
            return

        with open(self._path, encoding="utf-8") as f:
            data = json.load(f)

        self._providers = {
            int(tenant_id): [ProviderConfig.from_dict(p) for p in entry.get("providers", [])]
            for tenant_id, entry in data.get("tenants", {}).items()
        }
        self._last_mtime = mtime

    def _write(self) -> None:
        data = {
            "tenants": {
                str(tenant_id): {"providers": [p.to_dict() for p in providers]}
                for tenant_id, providers in self._providers.items()
            }
        }
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self._path)
        self._last_mtime = os.path.getmtime(self._path)

    def _find(self, tenant_id: int, provider_id: int) -> ProviderConfig | None:
        for config in self._providers.get(tenant_id, []):
            if config.id == provider_id:
                return config
        return None

    def _active(self, tenant_id: int) -> list[ProviderConfig]:
        self._load()  # reload if file changed
        active = [p for p in self._providers.get(tenant_id, []) if p.is_active]
        return sorted(active, key=_sort_key)

    async def list_providers(self, tenant_id: int) -> list[ProviderConfig]:
        return [self._decrypt_config(p) for p in self._active(tenant_id)]

    async def get_default_provider(self, tenant_id: int) -> ProviderConfig | None:
        for config in self._active(tenant_id):
            if config.is_default:
                return self._decrypt_config(config)
        return None

    async def get_provider_by_id(self, tenant_id: int, provider_id: int) -> ProviderConfig | None:
        for config in self._active(tenant_id):
            if config.id == provider_id:
                return self._decrypt_config(config)
        return None

    async def list_provider_ids(self, tenant_id: int) -> list[int]:
        return [p.id for p in self._active(tenant_id)]

    async def list_all_providers(self, tenant_id: int) -> list[ProviderConfig]:
        self._load()
        configs = sorted(self._providers.get(tenant_id, []), key=lambda p: p.id)
        return [replace(p, api_key="") for p in configs]

    async def save_provider(self, tenant_id: int, config: ProviderConfig) -> ProviderConfig:
        self._load()
        providers = self._providers.setdefault(tenant_id, [])
        existing = self._find(tenant_id, config.id) if config.id else None

        stored = replace(config)
        if not stored.id:
            stored.id = max((p.id for p in providers), default=0) + 1
        if config.api_key:
            stored.api_key = self._encrypt_key(config.api_key)
        elif existing is not None:
            stored.api_key = existing.api_key

        if stored.is_default:
            for other in providers:
                other.is_default = False

        if existing is not None:
            providers[providers.index(existing)] = stored
        else:
            providers.append(stored)
        self._write()
        return replace(stored, api_key="")

    async def delete_provider(self, tenant_id: int, provider_id: int) -> bool:
        self._load()
        existing = self._find(tenant_id, provider_id)
        if existing is None:
            return False
        self._providers[tenant_id].remove(existing)
        self._write()
        return True

    async def insert_usage(self, tenant_id, provider_id, message_id, record, cost_in, cost_out) -> None:
        self.usage.append(usage_row(tenant_id, provider_id, message_id, record, cost_in, cost_out))

    async def list_usage(self, tenant_id: int, provider_id: int | None = None) -> list[dict]:
        return [
            dict(row) for row in self.usage
            if row["tenant_id"] == tenant_id and (provider_id is None or row["provider_id"] == provider_id)
        ]

    async def insert_health(self, tenant_id: int, provider_id: int, result: HealthCheckResult) -> None:
        history = self.health.setdefault((tenant_id, provider_id), deque(maxlen=self._history_limit))
        history.append(result)
        await self.set_provider_health(tenant_id, provider_id, result.status)

    async def list_health(self, tenant_id: int, provider_id: int, limit: int = 20) -> list[HealthCheckResult]:
        history = self.health.get((tenant_id, provider_id), ())
        return list(reversed(history))[:limit]

    async def set_provider_health(self, tenant_id: int, provider_id: int, status: str) -> None:
        self._load()
        config = self._find(tenant_id, provider_id)
        if config is None:
            return
        config.health_status = status
        config.last_health_check = datetime.now(timezone.utc).isoformat()
        self._write()

    async def save_analysis(self, tenant_id: int, message_id: int, result: AnalysisResult) -> None:
        self.analyses[(tenant_id, message_id)] = result
        if result.is_important:
            # First flag wins, like an insert that ignores conflicts
            self.important.setdefault((tenant_id, message_id), {
                "priority": result.priority,
                "reason": result.reason,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
