"""Storage provider protocol, lifecycle and shared listing/I-O algorithms."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Protocol, runtime_checkable

from assetport.lib import observability
from assetport.lib.assets import Asset, AssetClassifier, create_asset_from_file_path
from assetport.lib.exceptions import (
    ConfigurationError,
    InvalidKeyError,
    NotReadyError,
    ReadError,
    StorageConnectionError,
    UnsupportedOperationError,
)
from assetport.lib.storage.discovery import discover_assets, get_file_name
from assetport.lib.storage.keys import KeyNormalizer, validate_key

logger = logging.getLogger(__name__)


class StorageType(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"


class ProviderState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class Capability(str, Enum):
    READ = "read"
    WRITE = "write"
    LIST = "list"
    DELETE = "delete"
    MANAGE_CONTAINERS = "manage_containers"
    DISCOVER_ASSETS = "discover_assets"


@dataclass
class ListingEntry:
    """One object returned by a backend enumeration."""

    key: str
    size: int | None = None
    last_modified: datetime | None = None


@runtime_checkable
class StorageProvider(Protocol):
    """Interface every storage backend implements."""

    kind: str
    storage_type: StorageType
    capabilities: frozenset[Capability]

    @property
    def state(self) -> ProviderState: ...

    def supports(self, capability: Capability) -> bool: ...

    async def initialize(self) -> None:
        """Round-trip to the backend; must succeed before any data operation."""
        ...

    async def read_text(self, key: str, encoding: str = "utf-8") -> str: ...

    async def read_binary(self, key: str) -> bytes: ...

    async def write_text(self, key: str, content: str | bytes, encoding: str = "utf-8") -> None: ...

    async def write_binary(self, key: str, content: bytes) -> None: ...

    async def delete_file(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def list_files(self, path: str | None = None, ext: str | None = None) -> list[str]: ...

    async def list_entries(self, path: str | None = None) -> list[ListingEntry]: ...

    async def list_containers(self, path: str | None = None) -> list[str]: ...

    async def create_container(self, name: str) -> None: ...

    async def delete_container(self, name: str) -> None: ...

    async def get_assets(self, container_name: str | None = None) -> list[Asset]: ...

    async def get_url(self, key: str) -> str: ...

    async def close(self) -> None: ...


class BaseStorageProvider:
    """Lifecycle, guards and generic algorithms shared by all backends.

    Subclasses provide the backend hooks (``_connect``, ``_get``, ``_put``,
    ``_iter_entries`` ...) and declare ``capabilities``. Hooks for operations
    a backend cannot map raise :class:`UnsupportedOperationError`, and the
    public methods check ``capabilities`` before calling them.

    Hooks receive native keys; public methods accept and return logical keys.
    """

    kind: ClassVar[str] = "base"
    storage_type: ClassVar[StorageType] = StorageType.CLOUD
    capabilities: ClassVar[frozenset[Capability]] = frozenset()

    def __init__(self, prefix: str = "", classifier: AssetClassifier | None = None) -> None:
        self._keys = KeyNormalizer(prefix)
        self._classifier = classifier or create_asset_from_file_path
        self._state = ProviderState.UNINITIALIZED
        self._handle: Any = None
        self._handle_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()

    @property
    def state(self) -> ProviderState:
        return self._state

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    get_file_name = staticmethod(get_file_name)

    # -- lifecycle --

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._state is ProviderState.READY:
                return
            if self._state in (ProviderState.ERROR, ProviderState.CLOSED):
                raise NotReadyError(
                    f"{self.kind} provider is {self._state.value}; create a new instance to retry"
                )

            self._state = ProviderState.INITIALIZING
            try:
                with observability.operation("initialize", self.kind):
                    await self._verify()
            except (ConfigurationError, StorageConnectionError):
                self._state = ProviderState.ERROR
                await self._release()
                raise
            except Exception as exc:
                self._state = ProviderState.ERROR
                await self._release()
                raise StorageConnectionError(
                    f"Could not connect to {self.kind} backend: {exc}"
                ) from exc

            self._state = ProviderState.READY
            logger.info("Initialized %s storage provider", self.kind)
            observability.info("storage provider ready", backend=self.kind)

    async def close(self) -> None:
        """Release the connection handle. The provider cannot be reused."""
        self._state = ProviderState.CLOSED
        await self._release()

    async def _release(self) -> None:
        async with self._handle_lock:
            handle, self._handle = self._handle, None
            if handle is not None:
                await self._disconnect(handle)
                logger.debug("Closed %s connection", self.kind)

    async def _connection(self) -> Any:
        """Return the memoized backend handle, creating it exactly once."""
        if self._handle is None:
            async with self._handle_lock:
                if self._state is ProviderState.CLOSED:
                    raise NotReadyError(f"{self.kind} provider is closed")
                if self._handle is None:
                    self._handle = await self._connect()
                    logger.debug("Opened %s connection", self.kind)
        return self._handle

    def _require(self, operation: str, capability: Capability | None = None) -> None:
        if self._state is not ProviderState.READY:
            raise NotReadyError(
                f"Cannot {operation}: {self.kind} provider is {self._state.value}"
            )
        if capability is not None and capability not in self.capabilities:
            raise UnsupportedOperationError(operation, self.kind)

    # -- blob I/O --

    async def read_binary(self, key: str) -> bytes:
        self._require("read_binary", Capability.READ)
        native = self._keys.to_native(key)
        with observability.operation("read", self.kind, key=native):
            return await self._get(native)

    async def read_text(self, key: str, encoding: str = "utf-8") -> str:
        self._require("read_text", Capability.READ)
        data = await self.read_binary(key)
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as exc:
            raise ReadError(key, f"{key!r} is not valid {encoding} text") from exc

    async def write_binary(self, key: str, content: bytes) -> None:
        self._require("write_binary", Capability.WRITE)
        if not isinstance(content, (bytes, bytearray, memoryview)):
            raise TypeError(f"write_binary expects bytes, got {type(content).__name__}")
        native = self._keys.to_native(key)
        with observability.operation("write", self.kind, key=native):
            await self._put(native, bytes(content))
        logger.debug("Wrote %d bytes to %s", len(content), native)

    async def write_text(self, key: str, content: str | bytes, encoding: str = "utf-8") -> None:
        self._require("write_text", Capability.WRITE)
        data = content.encode(encoding) if isinstance(content, str) else content
        await self.write_binary(key, data)

    async def delete_file(self, key: str) -> None:
        self._require("delete_file", Capability.DELETE)
        native = self._keys.to_native(key)
        with observability.operation("delete", self.kind, key=native):
            await self._delete(native)
        logger.debug("Deleted %s", native)

    async def exists(self, key: str) -> bool:
        self._require("exists", Capability.READ)
        native = self._keys.to_native(key)
        return await self._exists(native)

    async def get_url(self, key: str) -> str:
        self._require("get_url", Capability.READ)
        return await self._url(self._keys.to_native(key), None)

    # -- listing --

    async def list_entries(self, path: str | None = None) -> list[ListingEntry]:
        self._require("list_entries", Capability.LIST)
        return await self._collect_entries(path)

    async def list_files(self, path: str | None = None, ext: str | None = None) -> list[str]:
        """List logical keys under *path* in backend order.

        *ext* is a plain suffix match (``".png"``); ``None`` returns everything.
        """
        self._require("list_files", Capability.LIST)
        entries = await self._collect_entries(path)
        return [entry.key for entry in entries if not ext or entry.key.endswith(ext)]

    async def list_containers(self, path: str | None = None) -> list[str]:
        self._require("list_containers", Capability.LIST)
        with observability.operation("list_containers", self.kind):
            return await self._list_containers(path)

    async def _collect_entries(
        self, path: str | None, container: str | None = None
    ) -> list[ListingEntry]:
        scope = self._keys.scope(path)
        entries: list[ListingEntry] = []
        with observability.operation("list", self.kind, scope=scope):
            async with aclosing(self._iter_entries(scope, container)) as stream:
                async for entry in stream:
                    if self._keys.is_artifact(entry.key, scope):
                        continue
                    entries.append(
                        dataclasses.replace(entry, key=self._keys.to_logical(entry.key))
                    )
        return entries

    async def _verify(self) -> None:
        """Smoke test used by ``initialize``: fetch at most one listing entry."""
        async with aclosing(self._iter_entries(self._keys.scope(), None)) as stream:
            async for _ in stream:
                break

    # -- containers --

    async def create_container(self, name: str) -> None:
        self._require("create_container", Capability.MANAGE_CONTAINERS)
        name = self._container_name(name)
        with observability.operation("create_container", self.kind, container=name):
            await self._create_container(name)
        logger.info("Created %s container %s", self.kind, name)

    async def delete_container(self, name: str) -> None:
        self._require("delete_container", Capability.MANAGE_CONTAINERS)
        name = self._container_name(name)
        with observability.operation("delete_container", self.kind, container=name):
            await self._delete_container(name)
        logger.info("Deleted %s container %s", self.kind, name)

    @staticmethod
    def _container_name(name: str) -> str:
        name = validate_key(name)
        if "/" in name:
            raise InvalidKeyError(f"Container name must not contain '/': {name!r}")
        return name

    # -- asset discovery --

    async def get_assets(self, container_name: str | None = None) -> list[Asset]:
        """Return classified assets from the store, or from *container_name*."""
        self._require("get_assets", Capability.DISCOVER_ASSETS)
        if container_name is not None:
            container_name = self._container_name(container_name)

        entries = await self._collect_entries(None, container_name)

        async def resolve(key: str) -> str:
            return await self._url(self._keys.to_native(key), container_name)

        with observability.operation("get_assets", self.kind, count=len(entries)):
            return await discover_assets(entries, resolve, self._classifier)

    # -- backend hooks --

    async def _connect(self) -> Any:
        raise UnsupportedOperationError("connect", self.kind)

    async def _disconnect(self, handle: Any) -> None:
        pass

    async def _get(self, native: str) -> bytes:
        raise UnsupportedOperationError("read", self.kind)

    async def _put(self, native: str, data: bytes) -> None:
        raise UnsupportedOperationError("write", self.kind)

    async def _delete(self, native: str) -> None:
        raise UnsupportedOperationError("delete", self.kind)

    async def _exists(self, native: str) -> bool:
        raise UnsupportedOperationError("exists", self.kind)

    def _iter_entries(self, scope: str, container: str | None) -> AsyncIterator[ListingEntry]:
        raise UnsupportedOperationError("list", self.kind)

    async def _list_containers(self, path: str | None) -> list[str]:
        raise UnsupportedOperationError("list_containers", self.kind)

    async def _create_container(self, name: str) -> None:
        raise UnsupportedOperationError("create_container", self.kind)

    async def _delete_container(self, name: str) -> None:
        raise UnsupportedOperationError("delete_container", self.kind)

    async def _url(self, native: str, container: str | None) -> str:
        raise UnsupportedOperationError("get_url", self.kind)
