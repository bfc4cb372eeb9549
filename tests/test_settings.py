"""Tests for messageflow/config/settings.py: Settings and tenant_keys."""

from messageflow.config.settings import get_settings


class TestSettings:

    def test_defaults(self, override_settings):
        override_settings()
        s = get_settings()
        assert s.provider_store_backend == "json"
        assert s.router_cache_ttl == 300.0
        assert s.health_check_interval == 300.0
        assert s.health_slow_threshold_ms == 3000.0
        assert s.health_failure_threshold == 3
        assert s.worker_batch_size == 100
        assert s.anthropic_version == "2023-06-01"
        assert s.log_level == "INFO"

    def test_tenant_keys_single(self, override_settings):
        override_settings(TENANT_API_KEYS="my-key:7")
        assert get_settings().tenant_keys == {"my-key": 7}

    def test_tenant_keys_multiple(self, override_settings):
        override_settings(TENANT_API_KEYS="key1:1, key2:2 , key3:2")
        assert get_settings().tenant_keys == {"key1": 1, "key2": 2, "key3": 2}

    def test_tenant_keys_ignores_malformed(self, override_settings):
        override_settings(TENANT_API_KEYS="k1:1,,no-tenant,:3,k2:abc,k3:3,")
        assert get_settings().tenant_keys == {"k1": 1, "k3": 3}

    def test_tenant_keys_allow_colons_in_key(self, override_settings):
        override_settings(TENANT_API_KEYS="sk:live:abc:4")
        assert get_settings().tenant_keys == {"sk:live:abc": 4}

    def test_env_override(self, override_settings):
        override_settings(
            PROVIDER_STORE_BACKEND="dynamodb",
            ROUTER_CACHE_TTL="60",
            WORKER_BATCH_SIZE="25",
        )
        s = get_settings()
        assert s.provider_store_backend == "dynamodb"
        assert s.router_cache_ttl == 60.0
        assert s.worker_batch_size == 25
