"""Storage manager: registry of named storage providers."""

from __future__ import annotations

import asyncio
import importlib
import logging
from typing import TYPE_CHECKING

from assetport.lib.exceptions import ConfigurationError
from assetport.lib.storage.local import LocalStorageProvider

if TYPE_CHECKING:
    from assetport.config import StorageConfig, StoreConfig
    from assetport.lib.assets import AssetClassifier
    from assetport.lib.storage.base import StorageProvider

logger = logging.getLogger(__name__)


class StorageManager:
    """Registry that lazily creates, initializes and caches providers by name."""

    def __init__(self, config: StorageConfig, classifier: AssetClassifier | None = None) -> None:
        self._config = config
        self._classifier = classifier
        self._providers: dict[str, StorageProvider] = {}
        self._lock = asyncio.Lock()

    @property
    def default_store(self) -> str:
        return self._config.default

    @property
    def store_names(self) -> list[str]:
        return list(self._config.stores.keys())

    async def get(self, name: str | None = None) -> StorageProvider:
        """Return the initialized provider for *name*, creating it on first access."""
        name = name or self._config.default
        async with self._lock:
            if name not in self._providers:
                store_cfg = self._config.stores.get(name)
                if store_cfg is None:
                    raise KeyError(f"Unknown storage store: {name!r}")
                provider = create_storage_provider(
                    store_cfg, store_name=name, classifier=self._classifier
                )
                await provider.initialize()
                self._providers[name] = provider
        return self._providers[name]

    async def close(self) -> None:
        """Release connections held by providers."""
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception:
                logger.warning("Error closing storage store %s", name, exc_info=True)
            else:
                logger.debug("Closed storage store %s", name)
        self._providers.clear()


def load_provider_class(spec: str) -> type:
    """Import a provider class from a 'module:ClassName' string."""
    parts = spec.split(":")
    if len(parts) != 2:
        raise ConfigurationError(
            f"Invalid backend spec '{spec}': must contain exactly one colon"
        )
    module_path, class_name = parts
    try:
        module = importlib.import_module(module_path)
        return getattr(module, class_name)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Cannot load storage backend '{spec}': {exc}") from exc


def create_storage_provider(
    config: StoreConfig,
    store_name: str = "default",
    classifier: AssetClassifier | None = None,
) -> StorageProvider:
    """Instantiate a storage provider from configuration."""
    backend_type = config.backend

    if backend_type == "local":
        return LocalStorageProvider(config.local, classifier=classifier)

    if backend_type == "s3":
        from assetport.lib.storage.s3 import S3StorageProvider

        return S3StorageProvider(config.s3, classifier=classifier)

    if backend_type == "azure":
        from assetport.lib.storage.azure import AzureBlobStorageProvider

        return AzureBlobStorageProvider(config.azure, classifier=classifier)

    # Dynamic import: "module:ClassName"
    if ":" in backend_type:
        cls = load_provider_class(backend_type)
        logger.debug("Loaded custom storage backend %s for store %s", backend_type, store_name)
        return cls(config.options, classifier=classifier)

    raise ConfigurationError(
        f"Unknown storage backend '{backend_type}'. "
        "Use 'local', 's3', 'azure', or 'module:ClassName'."
    )
