"""Tests for the storage manager and provider factory."""

import logging
from unittest.mock import patch

import pytest

from assetport.config import StoreConfig, load_storage_config
from assetport.lib.exceptions import ConfigurationError, StorageConnectionError
from assetport.lib.storage.base import (
    BaseStorageProvider,
    Capability,
    ListingEntry,
    ProviderState,
)
from assetport.lib.storage.local import LocalStorageProvider
from assetport.lib.storage.manager import (
    StorageManager,
    create_storage_provider,
    load_provider_class,
)


class TrackingProvider(BaseStorageProvider):
    """Counts connections; listing fails when ``deny`` is set."""

    kind = "tracking"
    capabilities = frozenset({Capability.LIST})

    def __init__(self, deny=False, close_error=None):
        super().__init__()
        self.deny = deny
        self.close_error = close_error
        self.opened = 0
        self.closed = 0

    async def _connect(self):
        self.opened += 1
        return object()

    async def _disconnect(self, handle):
        self.closed += 1
        if self.close_error is not None:
            raise self.close_error

    async def _iter_entries(self, scope, container):
        await self._connection()
        if self.deny:
            raise PermissionError("access denied")
        yield ListingEntry(key="a.txt")


@pytest.fixture
def storage_config(local_root, tmp_path):
    return load_storage_config(
        {
            "default": "media",
            "stores": {
                "media": {"backend": "local", "local": {"path": str(local_root)}},
                "broken": {"backend": "local", "local": {"path": str(tmp_path / "absent")}},
            },
        }
    )


class TestStorageManager:
    def test_store_names(self, storage_config):
        manager = StorageManager(storage_config)
        assert manager.default_store == "media"
        assert manager.store_names == ["media", "broken"]

    @pytest.mark.asyncio
    async def test_get_returns_initialized_cached_provider(self, storage_config):
        manager = StorageManager(storage_config)

        first = await manager.get()
        second = await manager.get("media")

        assert first is second
        assert first.state is ProviderState.READY

    @pytest.mark.asyncio
    async def test_unknown_store(self, storage_config):
        manager = StorageManager(storage_config)
        with pytest.raises(KeyError, match="nope"):
            await manager.get("nope")

    @pytest.mark.asyncio
    async def test_failed_store_is_not_cached(self, storage_config, tmp_path):
        manager = StorageManager(storage_config)

        with pytest.raises(StorageConnectionError):
            await manager.get("broken")

        (tmp_path / "absent").mkdir()
        provider = await manager.get("broken")
        assert provider.state is ProviderState.READY

    @pytest.mark.asyncio
    async def test_failed_store_releases_its_connection(self, storage_config):
        provider = TrackingProvider(deny=True)
        manager = StorageManager(storage_config)

        with patch(
            "assetport.lib.storage.manager.create_storage_provider", return_value=provider
        ):
            with pytest.raises(StorageConnectionError):
                await manager.get("media")
        await manager.close()

        assert provider.opened == 1
        assert provider.closed == 1

    @pytest.mark.asyncio
    async def test_close_closes_providers(self, storage_config):
        manager = StorageManager(storage_config)
        provider = await manager.get()

        await manager.close()

        assert provider.state is ProviderState.CLOSED
        assert (await manager.get()) is not provider

    @pytest.mark.asyncio
    async def test_classifier_is_passed_through(self, storage_config, local_root):
        (local_root / "a.bin").write_bytes(b"x")
        seen = []

        def classifier(url, name):
            from assetport.lib.assets import create_asset_from_file_path

            seen.append(name)
            return create_asset_from_file_path(url, name)

        manager = StorageManager(storage_config, classifier=classifier)
        provider = await manager.get()

        assert await provider.get_assets() == []
        assert seen == ["a.bin"]

    @pytest.mark.asyncio
    async def test_close_continues_past_failing_provider(self, storage_config, caplog):
        failing = TrackingProvider(close_error=RuntimeError("socket gone"))
        healthy = await StorageManager(storage_config).get("media")
        manager = StorageManager(storage_config)

        with patch(
            "assetport.lib.storage.manager.create_storage_provider",
            side_effect=[failing, healthy],
        ):
            await manager.get("media")
            await manager.get("broken")

        with caplog.at_level(logging.WARNING, logger="assetport.lib.storage.manager"):
            await manager.close()

        assert failing.closed == 1
        assert healthy.state is ProviderState.CLOSED
        assert "Error closing storage store media" in caplog.text

class TestCreateStorageProvider:
    def test_local(self, local_root):
        config = StoreConfig(backend="local", local={"path": str(local_root)})
        assert isinstance(create_storage_provider(config), LocalStorageProvider)

    def test_dynamic_backend(self, local_root):
        config = StoreConfig(
            backend="assetport.lib.storage.local:LocalStorageProvider",
            options={"path": str(local_root)},
        )
        assert isinstance(create_storage_provider(config), LocalStorageProvider)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError, match="Unknown storage backend"):
            create_storage_provider(StoreConfig(backend="ftp"))

    @pytest.mark.parametrize("spec", ["a:b:c", "assetport.nope:Provider", "assetport.lib.storage.local:Nope"])
    def test_bad_dynamic_spec(self, spec):
        with pytest.raises(ConfigurationError):
            load_provider_class(spec)
