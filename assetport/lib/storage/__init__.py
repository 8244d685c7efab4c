"""Pluggable multi-backend asset storage."""

from assetport.lib.storage.base import (
    BaseStorageProvider,
    Capability,
    ListingEntry,
    ProviderState,
    StorageProvider,
    StorageType,
)
from assetport.lib.storage.discovery import get_file_name
from assetport.lib.storage.local import LocalStorageProvider
from assetport.lib.storage.manager import StorageManager, create_storage_provider

__all__ = [
    "BaseStorageProvider",
    "Capability",
    "ListingEntry",
    "LocalStorageProvider",
    "ProviderState",
    "StorageManager",
    "StorageProvider",
    "StorageType",
    "create_storage_provider",
    "get_file_name",
]
