"""Logical key <-> backend-native key conversion.

All key and URL composition goes through this module. A *logical* key is what
the application sees (``"cats/1.png"``); a *native* key is what the backend
stores (``"images/cats/1.png"`` when the store is scoped to the ``images``
folder).
"""

from __future__ import annotations

from urllib.parse import quote

from assetport.lib.exceptions import InvalidKeyError


def _clean(value: str) -> str:
    return value.replace("\\", "/").strip("/")


def validate_key(key: str) -> str:
    """Return *key* without surrounding slashes, rejecting unsafe keys."""
    if not isinstance(key, str):
        raise InvalidKeyError(f"Key must be a string, got {type(key).__name__}")
    cleaned = _clean(key)
    if not cleaned:
        raise InvalidKeyError("Key must not be empty")
    # Security: reject traversal and null bytes
    if "\x00" in cleaned or ".." in cleaned.split("/"):
        raise InvalidKeyError(f"Invalid key: {key!r}")
    return cleaned


def join_url(base: str, native: str, suffix: str = "") -> str:
    """Join a base URL and a native key, percent-encoding the key."""
    return f"{base.rstrip('/')}/{quote(native, safe='/')}{suffix}"


class KeyNormalizer:
    """Maps logical keys onto a folder prefix and back."""

    def __init__(self, prefix: str = "") -> None:
        self._prefix = _clean(prefix)

    @property
    def prefix(self) -> str:
        return self._prefix

    def to_native(self, key: str) -> str:
        key = validate_key(key)
        if self._prefix:
            return f"{self._prefix}/{key}"
        return key

    def to_logical(self, native: str) -> str:
        native = native.lstrip("/")
        if self._prefix and native.startswith(self._prefix + "/"):
            return native[len(self._prefix) + 1:]
        return native

    def scope(self, path: str | None = None) -> str:
        """Return the native listing root for a logical sub-path."""
        if path is None or not _clean(path):
            return self._prefix
        return self.to_native(path)

    @staticmethod
    def listing_prefix(scope: str) -> str:
        """Prefix to hand a flat store so ``a/b`` does not also match ``a/bc``."""
        return f"{scope}/" if scope else ""

    @staticmethod
    def is_artifact(native: str, scope: str) -> bool:
        """True for entries that stand for a directory rather than an object.

        Flat object stores commonly return the scoped prefix itself (often as
        a zero-byte ``folder/`` marker) alongside the real objects.
        """
        if native.endswith("/"):
            return True
        return native.strip("/") == scope.strip("/")

    @staticmethod
    def decorate(container: str, native: str) -> str:
        return f"{container}/{native}"
