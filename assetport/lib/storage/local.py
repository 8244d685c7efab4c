"""Local filesystem storage provider."""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

from assetport.config import LocalOptions, load_options
from assetport.lib.assets import AssetClassifier
from assetport.lib.exceptions import (
    InvalidKeyError,
    NotFoundError,
    ReadError,
    StorageConnectionError,
    WriteError,
)
from assetport.lib.storage.base import (
    BaseStorageProvider,
    Capability,
    ListingEntry,
    StorageType,
)
from assetport.lib.storage.keys import join_url, validate_key


class LocalStorageProvider(BaseStorageProvider):
    """Store files under a root directory.

    Containers are the directories directly below the root. Listings are
    sorted by path, since the filesystem itself guarantees no order.
    """

    kind = "local"
    storage_type = StorageType.LOCAL
    capabilities = frozenset(Capability)

    def __init__(
        self, options: LocalOptions | dict, classifier: AssetClassifier | None = None
    ) -> None:
        options = load_options(LocalOptions, options)
        super().__init__(prefix=options.folder, classifier=classifier)
        self._options = options

    async def _connect(self) -> Path:
        return await asyncio.to_thread(self._resolve_root)

    def _resolve_root(self) -> Path:
        root = Path(self._options.path).expanduser().resolve()
        if self._options.create:
            root.mkdir(parents=True, exist_ok=True)
        if not root.is_dir():
            raise StorageConnectionError(f"Storage root {root} is not a directory")
        return root

    async def _path(self, native: str, container: str | None = None) -> Path:
        root = await self._connection()
        base = root / container if container else root
        path = (base / native).resolve()
        if not path.is_relative_to(root):
            raise InvalidKeyError(f"Key escapes the storage root: {native!r}")
        return path

    # -- blob I/O --

    async def _get(self, native: str) -> bytes:
        path = await self._path(native)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise NotFoundError(self._keys.to_logical(native)) from exc
        except OSError as exc:
            raise ReadError(self._keys.to_logical(native), str(exc)) from exc

    async def _put(self, native: str, data: bytes) -> None:
        path = await self._path(native)
        try:
            await asyncio.to_thread(self._write_file, path, data)
        except OSError as exc:
            raise WriteError(self._keys.to_logical(native), str(exc)) from exc

    async def _delete(self, native: str) -> None:
        path = await self._path(native)
        try:
            await asyncio.to_thread(path.unlink)
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise NotFoundError(self._keys.to_logical(native)) from exc
        except OSError as exc:
            raise WriteError(self._keys.to_logical(native), str(exc)) from exc

    async def _exists(self, native: str) -> bool:
        path = await self._path(native)
        return await asyncio.to_thread(path.is_file)

    async def _url(self, native: str, container: str | None) -> str:
        if self._options.base_url:
            key = f"{container}/{native}" if container else native
            return join_url(self._options.base_url, key)
        path = await self._path(native, container)
        return path.as_uri()

    # -- listing --

    async def _iter_entries(self, scope: str, container: str | None) -> AsyncIterator[ListingEntry]:
        root = await self._connection()
        base = root / container if container else root
        if container and not await asyncio.to_thread(base.is_dir):
            raise NotFoundError(container, f"Container not found: {container!r}")
        try:
            entries = await asyncio.to_thread(self._walk, base, scope)
        except OSError as exc:
            raise StorageConnectionError(f"Failed to list {base}: {exc}") from exc
        for entry in entries:
            yield entry

    async def _list_containers(self, path: str | None) -> list[str]:
        root = await self._connection()
        target = (await self._path(validate_key(path))) if path else root
        try:
            return await asyncio.to_thread(self._subdirectories, target, root)
        except OSError as exc:
            raise StorageConnectionError(f"Failed to list {target}: {exc}") from exc

    # -- containers --

    async def _create_container(self, name: str) -> None:
        path = await self._path(name)
        try:
            await asyncio.to_thread(path.mkdir)
        except FileExistsError as exc:
            raise WriteError(name, f"Container already exists: {name!r}") from exc
        except OSError as exc:
            raise WriteError(name, str(exc)) from exc

    async def _delete_container(self, name: str) -> None:
        path = await self._path(name)
        if not await asyncio.to_thread(path.is_dir):
            raise NotFoundError(name, f"Container not found: {name!r}")
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as exc:
            raise WriteError(name, str(exc)) from exc

    # -- internal helpers --

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _walk(base: Path, scope: str) -> list[ListingEntry]:
        target = base / scope if scope else base
        if not target.is_dir():
            return []
        entries = []
        for p in sorted(target.rglob("*")):
            if not p.is_file():
                continue
            stat = p.stat()
            entries.append(
                ListingEntry(
                    key=p.relative_to(base).as_posix(),
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return entries

    @staticmethod
    def _subdirectories(target: Path, root: Path) -> list[str]:
        if not target.is_dir():
            return []
        return [p.relative_to(root).as_posix() for p in sorted(target.iterdir()) if p.is_dir()]
