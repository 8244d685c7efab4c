"""S3-compatible storage provider (requires ``pip install assetport[s3]``)."""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import AsyncIterator, Iterator
from contextlib import AsyncExitStack, aclosing, contextmanager
from typing import Any

try:
    import aioboto3
    from botocore.exceptions import BotoCoreError, ClientError
except ImportError as exc:
    raise ImportError(
        "S3 storage provider requires aioboto3. Install it with: pip install assetport[s3]"
    ) from exc

from assetport.config import LATEST_API_VERSION, S3Options, load_options
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

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})
AUTH_ERROR_CODES = frozenset(
    {"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken"}
)


class S3StorageProvider(BaseStorageProvider):
    """Store objects in an S3-compatible bucket.

    S3 is a flat key space: the configured folder is a key prefix, and a
    bucket cannot be created or deleted through this provider. Listings come
    back in the order S3 returns them (ascending UTF-8 key order).
    """

    kind = "s3"
    capabilities = frozenset(
        {
            Capability.READ,
            Capability.WRITE,
            Capability.LIST,
            Capability.DELETE,
            Capability.DISCOVER_ASSETS,
        }
    )

    def __init__(self, options: S3Options | dict, classifier: AssetClassifier | None = None) -> None:
        options = load_options(S3Options, options)
        super().__init__(prefix=options.folder, classifier=classifier)
        self._options = options
        self._session = aioboto3.Session()
        self._exit_stack: AsyncExitStack | None = None

    @property
    def bucket(self) -> str:
        return self._options.bucket

    def _client_kwargs(self) -> dict:
        kwargs: dict = {
            "region_name": self._options.region,
            "aws_access_key_id": self._options.access_key_id,
            "aws_secret_access_key": self._options.secret_access_key,
        }
        if self._options.api_version != LATEST_API_VERSION:
            kwargs["api_version"] = self._options.api_version
        if self._options.endpoint_url:
            kwargs["endpoint_url"] = self._options.endpoint_url
        return kwargs

    async def _connect(self) -> Any:
        stack = AsyncExitStack()
        client = await stack.enter_async_context(
            self._session.client("s3", **self._client_kwargs())
        )
        self._exit_stack = stack
        return client

    async def _disconnect(self, handle: Any) -> None:
        stack, self._exit_stack = self._exit_stack, None
        if stack is None:
            return
        try:
            await stack.aclose()
        except (BotoCoreError, OSError):
            logger.warning("Error closing S3 client", exc_info=True)

    @contextmanager
    def _translate_errors(
        self, native: str, failure: type[ReadError] | type[WriteError] | None
    ) -> Iterator[None]:
        """Map botocore exceptions onto the storage error taxonomy.

        With ``failure=None`` (listing) unexpected service errors surface as
        connection errors.
        """
        key = self._keys.to_logical(native)
        try:
            yield
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES:
                raise NotFoundError(key) from exc
            if code in AUTH_ERROR_CODES:
                raise StorageConnectionError(f"S3 rejected the request ({code})") from exc
            if failure is None:
                raise StorageConnectionError(f"S3 request failed ({code})") from exc
            raise failure(key, f"S3 request for {key!r} failed ({code})") from exc
        except BotoCoreError as exc:
            raise StorageConnectionError(f"S3 request failed: {exc}") from exc

    # -- blob I/O --

    async def _get(self, native: str) -> bytes:
        s3 = await self._connection()
        with self._translate_errors(native, ReadError):
            response = await s3.get_object(Bucket=self.bucket, Key=native)
            return await response["Body"].read()

    async def _put(self, native: str, data: bytes) -> None:
        s3 = await self._connection()
        put_kwargs: dict = {
            "Bucket": self.bucket,
            "Key": native,
            "Body": data,
            "ContentType": mimetypes.guess_type(native)[0] or "application/octet-stream",
        }
        if self._options.acl:
            put_kwargs["ACL"] = self._options.acl

        with self._translate_errors(native, WriteError):
            await s3.put_object(**put_kwargs)

    async def _delete(self, native: str) -> None:
        s3 = await self._connection()
        with self._translate_errors(native, WriteError):
            # delete_object succeeds for missing keys, so check first
            await s3.head_object(Bucket=self.bucket, Key=native)
            await s3.delete_object(Bucket=self.bucket, Key=native)

    async def _exists(self, native: str) -> bool:
        s3 = await self._connection()
        try:
            with self._translate_errors(native, ReadError):
                await s3.head_object(Bucket=self.bucket, Key=native)
        except NotFoundError:
            return False
        return True

    async def _url(self, native: str, container: str | None) -> str:
        bucket = container or self.bucket

        # CDN / custom public URL
        if self._options.public_url and container is None:
            return join_url(self._options.public_url, native)

        # Public-read bucket: standard S3 URL
        if self._options.acl == "public-read":
            if self._options.endpoint_url:
                return join_url(f"{self._options.endpoint_url.rstrip('/')}/{bucket}", native)
            return join_url(f"https://{bucket}.s3.{self._options.region}.amazonaws.com", native)

        # Private: generate presigned URL
        s3 = await self._connection()
        with self._translate_errors(native, ReadError):
            return await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": native},
                ExpiresIn=self._options.presign_ttl,
            )

    # -- listing --

    async def _iter_entries(self, scope: str, container: str | None) -> AsyncIterator[ListingEntry]:
        s3 = await self._connection()
        paginator = s3.get_paginator("list_objects_v2")
        with self._translate_errors(scope, None):
            async for page in paginator.paginate(
                Bucket=container or self.bucket,
                Prefix=self._keys.listing_prefix(scope),
                PaginationConfig={"PageSize": self._options.page_size},
            ):
                for obj in page.get("Contents", []):
                    yield ListingEntry(
                        key=obj["Key"],
                        size=obj.get("Size"),
                        last_modified=obj.get("LastModified"),
                    )

    async def _list_containers(self, path: str | None) -> list[str]:
        """List bucket-decorated keys (``bucket/key``) under the folder."""
        scope = self._keys.scope(path)
        names: list[str] = []
        async with aclosing(self._iter_entries(scope, None)) as stream:
            async for entry in stream:
                if self._keys.is_artifact(entry.key, scope):
                    continue
                names.append(self._keys.decorate(self.bucket, entry.key))
        return names
