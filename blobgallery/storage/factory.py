"""
Object Store Factory

Creates the configured object store backend.
"""

from ..core.config_manager import StorageBackendType, StorageConfig
from .exceptions import StoreError
from .interface import ObjectStore
from .memory import InMemoryObjectStore


def create_object_store(config: StorageConfig) -> ObjectStore:
    """
    Factory function to create an object store based on configuration.

    Args:
        config: Storage configuration

    Returns:
        Object store bound to the configured container

    Raises:
        StoreError: If the backend is unknown or lacks credentials

    Example:
        ```python
        config = StorageConfig(backend="azure", account_name="devstore", account_key="...")
        store = create_object_store(config)
        await store.create_container_if_not_exists()
        ```
    """
    try:
        backend = StorageBackendType(config.backend)
    except ValueError as e:
        raise StoreError(
            f"Unknown storage backend: {config.backend}. "
            f"Supported backends: {[t.value for t in StorageBackendType]}"
        ) from e

    if backend == StorageBackendType.AZURE:
        # Imported lazily so the memory backend works without the Azure SDK loaded
        from .azure_store import AzureBlobObjectStore, build_connection_string

        connection_string = config.connection_string
        if not connection_string:
            if not config.account_name or not config.account_key:
                raise StoreError(
                    "Azure backend requires a connection string or "
                    "STORAGE_ACCOUNT_NAME and STORAGE_ACCOUNT_KEY"
                )
            connection_string = build_connection_string(
                config.account_name, config.account_key, config.host, config.port
            )
        return AzureBlobObjectStore(connection_string, config.container_name)

    return InMemoryObjectStore(config.container_name)
