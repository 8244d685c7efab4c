"""assetport - one async contract over local, S3 and Azure Blob asset storage."""

__version__ = "0.1.0"
