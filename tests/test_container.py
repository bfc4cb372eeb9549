"""Tests for process wiring: messageflow/storage/factory.py and messageflow/container.py."""

from unittest.mock import AsyncMock

import pytest

import messageflow.container as container_mod
import messageflow.storage.factory as factory_mod
from messageflow.container import build_container, close_container, get_container
from messageflow.storage.dynamodb_store import DynamoDBProviderStore
from messageflow.storage.factory import get_cipher, get_provider_store
from messageflow.storage.store import JSONProviderStore
from messageflow.workers.queue import AnalysisQueue

from tests.conftest import MASTER_KEY


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    monkeypatch.setattr(factory_mod, "_store", None)
    monkeypatch.setattr(container_mod, "_container", None)
    yield
    monkeypatch.setattr(factory_mod, "_store", None)
    monkeypatch.setattr(container_mod, "_container", None)


class TestProviderStoreFactory:

    def test_json_backend(self, override_settings, providers_json_file):
        override_settings(PROVIDER_STORE_BACKEND="json", PROVIDER_CONFIG_PATH=providers_json_file)
        store = get_provider_store()
        assert isinstance(store, JSONProviderStore)
        assert get_provider_store() is store

    def test_dynamodb_backend(self, override_settings):
        override_settings(PROVIDER_STORE_BACKEND="dynamodb", DYNAMODB_TABLE_NAME="tbl", MASTER_KEY=MASTER_KEY)
        store = get_provider_store()
        assert isinstance(store, DynamoDBProviderStore)
        assert store._table_name == "tbl"
        assert store._cipher is not None

    def test_unknown_backend(self, override_settings):
        override_settings(PROVIDER_STORE_BACKEND="postgres")
        with pytest.raises(ValueError):
            get_provider_store()

    def test_cipher_requires_master_key(self, override_settings):
        override_settings(MASTER_KEY="")
        assert get_cipher() is None
        override_settings(MASTER_KEY=MASTER_KEY)
        assert get_cipher() is not None


class TestContainer:

    def test_build_wires_shared_components(self, override_settings, providers_json_file):
        override_settings(ROUTER_CACHE_TTL="30", HEALTH_CHECK_INTERVAL="60", WORKER_BATCH_SIZE="5")
        store = JSONProviderStore(providers_json_file)
        queue = AnalysisQueue(AsyncMock())

        container = build_container(store=store, queue=queue)

        assert container.router.store is store
        assert container.router.factory is container.factory
        assert container.router.cache.ttl == 30.0
        assert container.service.limiter is container.limiter
        assert container.router.limiter is container.limiter
        assert container.health_scheduler.interval == 60.0
        assert container.worker_scheduler.worker.batch_size == 5
        assert container.worker_scheduler.worker.queue is queue

    async def test_singleton_and_close(self, override_settings, providers_json_file, monkeypatch):
        override_settings(PROVIDER_CONFIG_PATH=providers_json_file)
        client = AsyncMock()
        monkeypatch.setattr(AnalysisQueue, "from_url", classmethod(lambda cls, url: cls(client)))

        container = get_container()
        assert get_container() is container

        await close_container()
        client.aclose.assert_awaited_once()
        assert container_mod._container is None
