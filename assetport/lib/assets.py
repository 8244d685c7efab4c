"""Asset model and file-type classification."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Callable

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "tif", "tiff"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "avi", "m4v", "mpg", "wmv"})
TFRECORD_EXTENSIONS = frozenset({"tfrecord"})


class AssetType(int, Enum):
    UNKNOWN = 0
    IMAGE = 1
    VIDEO = 2
    VIDEO_FRAME = 3
    TFRECORD = 4


@dataclass
class Asset:
    """An application-level record derived from a stored object."""

    id: str
    type: AssetType
    name: str
    path: str
    format: str
    size: int | None = None


AssetClassifier = Callable[[str, str], Asset]


def asset_type_for_format(fmt: str) -> AssetType:
    fmt = fmt.lower()
    if fmt in IMAGE_EXTENSIONS:
        return AssetType.IMAGE
    if fmt in VIDEO_EXTENSIONS:
        return AssetType.VIDEO
    if fmt in TFRECORD_EXTENSIONS:
        return AssetType.TFRECORD
    return AssetType.UNKNOWN


def create_asset_from_file_path(path: str, name: str | None = None) -> Asset:
    """Build an :class:`Asset` for *path*, classifying it by file extension.

    The asset id is the md5 of the path, so the same object always yields the
    same id. Query strings (e.g. presigned URL signatures) are ignored when
    deriving the name and format.
    """
    normalized = path.replace("\\", "/")
    if name is None:
        name = normalized.split("/")[-1].split("?")[0]
    base = name.split("?")[0]
    fmt = base.rsplit(".", 1)[-1] if "." in base else ""

    return Asset(
        id=hashlib.md5(path.encode("utf-8")).hexdigest(),
        type=asset_type_for_format(fmt),
        name=name,
        path=path,
        format=fmt.lower(),
    )
