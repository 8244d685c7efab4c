"""Azure Blob Storage provider (requires ``pip install assetport[azure]``)."""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any

try:
    from azure.core.exceptions import (
        AzureError,
        ClientAuthenticationError,
        HttpResponseError,
        ResourceExistsError,
        ResourceNotFoundError,
    )
    from azure.storage.blob import ContentSettings
    from azure.storage.blob.aio import BlobServiceClient
except ImportError as exc:
    raise ImportError(
        "Azure storage provider requires azure-storage-blob. "
        "Install it with: pip install assetport[azure]"
    ) from exc

from assetport.config import LATEST_API_VERSION, AzureBlobOptions, load_options
from assetport.lib.assets import AssetClassifier
from assetport.lib.exceptions import (
    NotFoundError,
    ReadError,
    StorageConnectionError,
    WriteError,
)
from assetport.lib.storage.base import BaseStorageProvider, Capability, ListingEntry
from assetport.lib.storage.keys import join_url

logger = logging.getLogger(__name__)


class AzureBlobStorageProvider(BaseStorageProvider):
    """Store blobs in an Azure Storage account.

    Two-tier: the account holds containers, containers hold blobs. The
    configured container is used unless an operation names another one.
    """

    kind = "azure"
    capabilities = frozenset(Capability)

    def __init__(
        self, options: AzureBlobOptions | dict, classifier: AssetClassifier | None = None
    ) -> None:
        options = load_options(AzureBlobOptions, options)
        super().__init__(prefix=options.folder, classifier=classifier)
        self._options = options

    @property
    def container(self) -> str:
        return self._options.container

    @property
    def sas_token(self) -> str | None:
        """SAS appended to blob URLs, from the options or the connection string."""
        if self._options.sas_token:
            return self._options.sas_token.lstrip("?")
        if self._options.connection_string:
            for part in self._options.connection_string.split(";"):
                name, _, value = part.partition("=")
                if name.strip() == "SharedAccessSignature" and value:
                    return value.lstrip("?")
        return None

    def _client_kwargs(self) -> dict:
        kwargs: dict = {}
        if self._options.api_version != LATEST_API_VERSION:
            kwargs["api_version"] = self._options.api_version
        return kwargs

    async def _connect(self) -> BlobServiceClient:
        if self._options.connection_string:
            return BlobServiceClient.from_connection_string(
                self._options.connection_string, **self._client_kwargs()
            )
        if self._options.account_key:
            credential: Any = {
                "account_name": self._options.account_name,
                "account_key": self._options.account_key,
            }
        else:
            credential = self._options.sas_token
        return BlobServiceClient(
            self._options.account_url, credential=credential, **self._client_kwargs()
        )

    async def _disconnect(self, handle: BlobServiceClient) -> None:
        try:
            await handle.close()
        except AzureError:
            logger.warning("Error closing Azure blob client", exc_info=True)

    async def _container_client(self, container: str | None = None):
        service = await self._connection()
        return service.get_container_client(container or self.container)

    @contextmanager
    def _translate_errors(
        self, native: str, failure: type[ReadError] | type[WriteError] | None
    ) -> Iterator[None]:
        key = self._keys.to_logical(native)
        try:
            yield
        except ResourceNotFoundError as exc:
            raise NotFoundError(key) from exc
        except ResourceExistsError as exc:
            raise WriteError(key, f"{key!r} already exists") from exc
        except ClientAuthenticationError as exc:
            raise StorageConnectionError(f"Azure rejected the credentials: {exc.message}") from exc
        except HttpResponseError as exc:
            if failure is None:
                raise StorageConnectionError(f"Azure request failed: {exc.message}") from exc
            raise failure(key, f"Azure request for {key!r} failed: {exc.message}") from exc
        except AzureError as exc:
            raise StorageConnectionError(f"Azure request failed: {exc.message}") from exc

    # -- blob I/O --

    async def _get(self, native: str) -> bytes:
        container = await self._container_client()
        with self._translate_errors(native, ReadError):
            downloader = await container.download_blob(native)
            return await downloader.readall()

    async def _put(self, native: str, data: bytes) -> None:
        container = await self._container_client()
        content_type = mimetypes.guess_type(native)[0] or "application/octet-stream"
        with self._translate_errors(native, WriteError):
            await container.upload_blob(
                name=native,
                data=data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )

    async def _delete(self, native: str) -> None:
        container = await self._container_client()
        with self._translate_errors(native, WriteError):
            await container.delete_blob(native)

    async def _exists(self, native: str) -> bool:
        container = await self._container_client()
        with self._translate_errors(native, ReadError):
            return await container.get_blob_client(native).exists()

    async def _url(self, native: str, container: str | None) -> str:
        service = await self._connection()
        account_url = service.url.split("?")[0]
        sas_token = self.sas_token
        suffix = f"?{sas_token}" if sas_token else ""
        return join_url(f"{account_url.rstrip('/')}/{container or self.container}", native, suffix)

    # -- listing --

    async def _iter_entries(self, scope: str, container: str | None) -> AsyncIterator[ListingEntry]:
        client = await self._container_client(container)
        with self._translate_errors(scope, None):
            async for blob in client.list_blobs(
                name_starts_with=self._keys.listing_prefix(scope) or None
            ):
                yield ListingEntry(key=blob.name, size=blob.size, last_modified=blob.last_modified)

    async def _list_containers(self, path: str | None) -> list[str]:
        service = await self._connection()
        names: list[str] = []
        with self._translate_errors(path or "", None):
            async for props in service.list_containers(name_starts_with=path or None):
                names.append(props.name)
        return names

    # -- containers --

    async def _create_container(self, name: str) -> None:
        service = await self._connection()
        with self._translate_errors(name, WriteError):
            await service.create_container(name)

    async def _delete_container(self, name: str) -> None:
        service = await self._connection()
        with self._translate_errors(name, WriteError):
            await service.delete_container(name)
