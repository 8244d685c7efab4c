"""Tests for the Azure Blob provider against a mocked service client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
)

from assetport.lib.assets import AssetType
from assetport.lib.exceptions import (
    ConfigurationError,
    NotFoundError,
    ReadError,
    StorageConnectionError,
    WriteError,
)
from assetport.lib.storage.azure import AzureBlobStorageProvider
from assetport.lib.storage.base import Capability, ProviderState

OPTIONS = {
    "account_name": "acct",
    "account_key": "a2V5",
    "container": "media",
    "folder": "images",
}


def blob(name, size=1):
    return SimpleNamespace(name=name, size=size, last_modified=None)


@pytest.fixture
def container_client(async_iter):
    container = MagicMock()
    container.blobs = []
    container.list_error = None
    container.list_blobs = MagicMock(
        side_effect=lambda **kwargs: async_iter(container.blobs, container.list_error)
    )
    downloader = MagicMock(readall=AsyncMock(return_value=b""))
    container.download_blob = AsyncMock(return_value=downloader)
    container.downloader = downloader
    container.upload_blob = AsyncMock()
    container.delete_blob = AsyncMock()
    blob_client = MagicMock(exists=AsyncMock(return_value=True))
    container.get_blob_client = MagicMock(return_value=blob_client)
    container.blob_client = blob_client
    return container


@pytest.fixture
def service(container_client, async_iter):
    service = MagicMock()
    service.url = "https://acct.blob.core.windows.net/"
    service.close = AsyncMock()
    service.get_container_client = MagicMock(return_value=container_client)
    service.containers = []
    service.list_containers = MagicMock(
        side_effect=lambda **kwargs: async_iter(service.containers)
    )
    service.create_container = AsyncMock()
    service.delete_container = AsyncMock()
    return service


@pytest.fixture
def client_cls(service):
    with patch("assetport.lib.storage.azure.BlobServiceClient") as cls:
        cls.return_value = service
        cls.from_connection_string.return_value = service
        yield cls


@pytest.fixture
def make_provider(client_cls):
    async def _make(**overrides):
        options = {**OPTIONS, **overrides}
        provider = AzureBlobStorageProvider({k: v for k, v in options.items() if v is not None})
        await provider.initialize()
        return provider

    return _make


class TestConnection:
    @pytest.mark.asyncio
    async def test_account_key_credential(self, make_provider, client_cls):
        provider = await make_provider()

        assert provider.state is ProviderState.READY
        client_cls.assert_called_once_with(
            "https://acct.blob.core.windows.net",
            credential={"account_name": "acct", "account_key": "a2V5"},
        )

    @pytest.mark.asyncio
    async def test_sas_credential_and_api_version(self, make_provider, client_cls):
        await make_provider(account_key=None, sas_token="sv=1&sig=2", api_version="2021-08-06")

        client_cls.assert_called_once_with(
            "https://acct.blob.core.windows.net",
            credential="sv=1&sig=2",
            api_version="2021-08-06",
        )

    @pytest.mark.asyncio
    async def test_connection_string(self, make_provider, client_cls):
        await make_provider(account_key=None, connection_string="UseDevelopmentStorage=true")

        client_cls.from_connection_string.assert_called_once_with("UseDevelopmentStorage=true")
        client_cls.assert_not_called()

    def test_missing_credential(self, client_cls):
        with pytest.raises(ConfigurationError):
            AzureBlobStorageProvider({"account_name": "acct", "container": "media"})

    @pytest.mark.asyncio
    async def test_smoke_test_lists_container(self, make_provider, service, container_client):
        await make_provider()

        service.get_container_client.assert_called_with("media")
        container_client.list_blobs.assert_called_with(name_starts_with="images/")

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, client_cls, container_client):
        container_client.list_error = ClientAuthenticationError(message="denied")
        provider = AzureBlobStorageProvider(OPTIONS)

        with pytest.raises(StorageConnectionError):
            await provider.initialize()
        assert provider.state is ProviderState.ERROR

    @pytest.mark.asyncio
    async def test_unreachable_account(self, client_cls, container_client):
        container_client.list_error = ServiceRequestError(message="dns failure")
        provider = AzureBlobStorageProvider(OPTIONS)

        with pytest.raises(StorageConnectionError):
            await provider.initialize()

    @pytest.mark.asyncio
    async def test_close(self, make_provider, service):
        provider = await make_provider()
        await provider.close()

        service.close.assert_awaited_once()
        assert provider.state is ProviderState.CLOSED


class TestBlobIO:
    @pytest.mark.asyncio
    async def test_read_binary(self, make_provider, container_client):
        container_client.downloader.readall.return_value = b"\xff\x00"
        provider = await make_provider()

        assert await provider.read_binary("a.bin") == b"\xff\x00"
        container_client.download_blob.assert_awaited_once_with("images/a.bin")

    @pytest.mark.asyncio
    async def test_read_missing(self, make_provider, container_client):
        container_client.download_blob.side_effect = ResourceNotFoundError(message="missing")
        provider = await make_provider()

        with pytest.raises(NotFoundError) as exc_info:
            await provider.read_text("a.txt")
        assert exc_info.value.key == "a.txt"

    @pytest.mark.asyncio
    async def test_read_failure(self, make_provider, container_client):
        container_client.download_blob.side_effect = HttpResponseError(message="boom")
        provider = await make_provider()

        with pytest.raises(ReadError):
            await provider.read_binary("a.bin")

    @pytest.mark.asyncio
    async def test_write_overwrites(self, make_provider, container_client):
        provider = await make_provider()

        await provider.write_text("doc.json", '{"a": 1}')

        kwargs = container_client.upload_blob.call_args.kwargs
        assert kwargs["name"] == "images/doc.json"
        assert kwargs["data"] == b'{"a": 1}'
        assert kwargs["overwrite"] is True
        assert kwargs["content_settings"].content_type == "application/json"

    @pytest.mark.asyncio
    async def test_write_failure(self, make_provider, container_client):
        container_client.upload_blob.side_effect = HttpResponseError(message="boom")
        provider = await make_provider()

        with pytest.raises(WriteError):
            await provider.write_binary("a.bin", b"x")

    @pytest.mark.asyncio
    async def test_delete(self, make_provider, container_client):
        provider = await make_provider()
        await provider.delete_file("a.png")
        container_client.delete_blob.assert_awaited_once_with("images/a.png")

        container_client.delete_blob.side_effect = ResourceNotFoundError(message="missing")
        with pytest.raises(NotFoundError):
            await provider.delete_file("a.png")

    @pytest.mark.asyncio
    async def test_exists(self, make_provider, container_client):
        provider = await make_provider()
        assert await provider.exists("a.png")
        container_client.get_blob_client.assert_called_with("images/a.png")


class TestListing:
    @pytest.mark.asyncio
    async def test_list_files(self, make_provider, container_client):
        provider = await make_provider()
        container_client.blobs = [blob("images/b.png"), blob("images/a.txt"), blob("images/sub/c.png")]

        assert await provider.list_files() == ["b.png", "a.txt", "sub/c.png"]
        assert await provider.list_files(ext=".png") == ["b.png", "sub/c.png"]

    @pytest.mark.asyncio
    async def test_list_failure(self, make_provider, container_client):
        provider = await make_provider()
        container_client.list_error = HttpResponseError(message="boom")

        with pytest.raises(StorageConnectionError):
            await provider.list_files()

    @pytest.mark.asyncio
    async def test_list_containers(self, make_provider, service):
        provider = await make_provider()
        service.containers = [SimpleNamespace(name="media"), SimpleNamespace(name="archive")]

        assert await provider.list_containers() == ["media", "archive"]
        service.list_containers.assert_called_with(name_starts_with=None)


class TestContainers:
    @pytest.mark.asyncio
    async def test_create_and_delete(self, make_provider, service):
        provider = await make_provider()
        assert provider.supports(Capability.MANAGE_CONTAINERS)

        await provider.create_container("archive")
        await provider.delete_container("archive")

        service.create_container.assert_awaited_once_with("archive")
        service.delete_container.assert_awaited_once_with("archive")

    @pytest.mark.asyncio
    async def test_create_existing(self, make_provider, service):
        service.create_container.side_effect = ResourceExistsError(message="exists")
        provider = await make_provider()

        with pytest.raises(WriteError):
            await provider.create_container("media")

    @pytest.mark.asyncio
    async def test_delete_missing(self, make_provider, service):
        service.delete_container.side_effect = ResourceNotFoundError(message="missing")
        provider = await make_provider()

        with pytest.raises(NotFoundError):
            await provider.delete_container("archive")


class TestAssets:
    @pytest.mark.asyncio
    async def test_urls_carry_sas_token(self, make_provider, container_client):
        provider = await make_provider(account_key=None, sas_token="?sv=1&sig=2")
        container_client.blobs = [blob("images/a.png", 7), blob("images/readme.md")]

        [asset] = await provider.get_assets()

        assert asset.path == "https://acct.blob.core.windows.net/media/images/a.png?sv=1&sig=2"
        assert asset.name == "a.png"
        assert asset.type == AssetType.IMAGE
        assert asset.size == 7

    @pytest.mark.asyncio
    async def test_urls_carry_connection_string_sas(self, make_provider, container_client):
        provider = await make_provider(
            account_key=None,
            connection_string=(
                "BlobEndpoint=https://acct.blob.core.windows.net/;"
                "SharedAccessSignature=sv=2022-11-02&sp=r&sig=abc%3D"
            ),
        )
        container_client.blobs = [blob("images/a.png")]

        [asset] = await provider.get_assets()

        assert asset.path == (
            "https://acct.blob.core.windows.net/media/images/a.png?sv=2022-11-02&sp=r&sig=abc%3D"
        )

    @pytest.mark.asyncio
    async def test_container_override(self, make_provider, service, container_client):
        provider = await make_provider()
        container_client.blobs = [blob("images/clip.mov")]

        [asset] = await provider.get_assets("archive")

        service.get_container_client.assert_called_with("archive")
        assert asset.path == "https://acct.blob.core.windows.net/archive/images/clip.mov"
