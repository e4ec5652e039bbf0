"""Upload collaborators for finished dump files.

Usage:
    from db_dumper.storage import build_uploader

    uploader = build_uploader(config.storage)   # None when no bucket is set
"""

from db_dumper.config.models import StorageSettings
from db_dumper.storage.base import UploadCategory, Uploader
from db_dumper.storage.s3 import S3Uploader


def build_uploader(settings: StorageSettings) -> Uploader | None:
    """Build the configured uploader, or ``None`` if uploads are disabled."""
    if not settings.bucket:
        return None
    return S3Uploader(settings)


__all__ = ["Uploader", "UploadCategory", "S3Uploader", "build_uploader"]
