"""Factory for provider store backends."""

from messageflow.config.settings import get_settings
from messageflow.storage.crypto import SecretCipher
from messageflow.storage.store import JSONProviderStore, ProviderStore

_store: ProviderStore | None = None


def get_cipher() -> SecretCipher | None:
    """Cipher from MASTER_KEY, or None when no key is configured."""
    master_key = get_settings().master_key
    if not master_key:
        return None
    return SecretCipher(master_key)


def get_provider_store() -> ProviderStore:
    """Get the provider store singleton."""
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    backend = settings.provider_store_backend
    cipher = get_cipher()

    if backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from messageflow.storage.dynamodb_store import DynamoDBProviderStore
        _store = DynamoDBProviderStore(
            table_name=settings.dynamodb_table_name,
            region=settings.aws_region,
            cipher=cipher,
        )
        return _store

    if backend == "json":
        _store = JSONProviderStore(settings.provider_config_path, cipher=cipher)
        return _store

    raise ValueError(f"Unknown provider store backend: {backend}")
