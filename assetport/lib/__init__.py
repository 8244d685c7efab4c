from assetport.lib.exceptions import (
    ConfigurationError,
    InvalidKeyError,
    NotFoundError,
    NotReadyError,
    ReadError,
    StorageConnectionError,
    StorageError,
    UnsupportedOperationError,
    WriteError,
)

__all__ = [
    "ConfigurationError",
    "InvalidKeyError",
    "NotFoundError",
    "NotReadyError",
    "ReadError",
    "StorageConnectionError",
    "StorageError",
    "UnsupportedOperationError",
    "WriteError",
]
