"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Tenant authentication
    # Comma-separated list of "api_key:tenant_id" pairs
    tenant_api_keys: str = "dev-key-1:1"

    # Secret encryption (AES-GCM, at least 32 bytes)
    master_key: str = ""

    # Provider store
    provider_store_backend: str = "json"  # "json" | "dynamodb"
    provider_config_path: str = "providers.json"
    dynamodb_table_name: str = "messageflow-llm"
    aws_region: str = "us-east-1"

    # Analysis queue
    redis_url: str = "redis://localhost:6379/0"
    worker_batch_size: int = 100

    # Routing and health
    router_cache_ttl: float = 300.0  # seconds
    health_check_interval: float = 300.0  # seconds
    health_slow_threshold_ms: float = 3000.0
    health_failure_threshold: int = 3

    # Default vendor endpoints (overridden per provider by base_url)
    openai_base_url: str = "https://api.openai.com"
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    cohere_base_url: str = "https://api.cohere.com"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def tenant_keys(self) -> dict[str, int]:
        """Parse "key:tenant" pairs. Malformed entries are ignored."""
        keys: dict[str, int] = {}
        for entry in self.tenant_api_keys.split(","):
            key, sep, tenant = entry.strip().rpartition(":")
            if not sep or not key.strip() or not tenant.strip().isdigit():
                continue
            keys[key.strip()] = int(tenant)
        return keys


@lru_cache
def get_settings() -> Settings:
    return Settings()
