"""Storage error taxonomy.

Every provider failure surfaces as a subclass of :class:`StorageError` so the
calling application can branch on the failure kind rather than on message
text. Several classes also derive from the closest builtin exception, which
keeps ``except KeyError`` / ``except ConnectionError`` style callers working.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for all storage provider errors."""


class ConfigurationError(StorageError, ValueError):
    """Raised when storage options are missing or invalid."""


class NotReadyError(StorageError):
    """Raised when an operation is attempted on a provider that is not ready."""


class StorageConnectionError(StorageError, ConnectionError):
    """Raised when the backend cannot be reached or rejects the credentials."""


class InvalidKeyError(StorageError, ValueError):
    """Raised for keys that cannot be mapped safely onto a backend."""


class NotFoundError(StorageError, KeyError):
    """Raised when a key or container does not exist."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Not found: {key!r}")

    def __str__(self) -> str:
        return self.args[0]


class ReadError(StorageError):
    """Raised when reading an object fails mid-operation."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Failed to read {key!r}")


class WriteError(StorageError):
    """Raised when writing an object fails mid-operation."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Failed to write {key!r}")


class UnsupportedOperationError(StorageError, NotImplementedError):
    """Raised when a backend has no meaningful mapping for an operation."""

    def __init__(self, operation: str, backend: str) -> None:
        self.operation = operation
        self.backend = backend
        super().__init__(f"{operation} is not supported by the {backend} backend")
