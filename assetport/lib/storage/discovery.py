"""Turns raw listings into typed assets."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

from assetport.lib.assets import Asset, AssetClassifier, AssetType

if TYPE_CHECKING:
    from assetport.lib.storage.base import ListingEntry

logger = logging.getLogger(__name__)


def get_file_name(url: str) -> str:
    """Return the last path segment of *url* without its query string.

    >>> get_file_name("https://host/a/b/c.png?sig=xyz")
    'c.png'
    """
    return url.split("/")[-1].split("?")[0]


async def discover_assets(
    entries: Iterable[ListingEntry],
    resolve_url: Callable[[str], Awaitable[str]],
    classifier: AssetClassifier,
) -> list[Asset]:
    """Classify each listed entry, keeping only recognized asset types."""
    assets: list[Asset] = []
    for entry in entries:
        url = await resolve_url(entry.key)
        asset = classifier(url, get_file_name(url))
        if asset.type == AssetType.UNKNOWN:
            logger.debug("Skipping unclassified object %s", entry.key)
            continue
        if asset.size is None:
            asset.size = entry.size
        assets.append(asset)
    return assets
