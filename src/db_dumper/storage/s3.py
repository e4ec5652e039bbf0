"""S3 upload of finished dump files.

Works with AWS S3 and any S3-compatible store (MinIO, Ceph) through an
optional endpoint URL.  Credentials come from the usual boto3 chain
(environment, shared config, instance role).

Usage:
    from db_dumper.config.models import StorageSettings
    from db_dumper.storage.s3 import S3Uploader

    uploader = S3Uploader(StorageSettings(bucket="backups", prefix="tidb/2024-06-01"))
    uploader.upload(Path("dumpdir/shop.orders.0.sql"), "table")
    # -> "s3://backups/tidb/2024-06-01/table/shop.orders.0.sql"
"""

import logging
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from db_dumper.config.models import StorageSettings
from db_dumper.storage.base import UploadCategory

logger = logging.getLogger(__name__)


class S3Uploader:
    """Uploads dump files to ``s3://<bucket>/<prefix>/<category>/<file name>``.

    Args:
        settings: Storage settings; ``bucket`` is required.
        client: Pre-built boto3 S3 client (mainly for tests).

    Raises:
        ValueError: If no bucket is configured.
    """

    def __init__(self, settings: StorageSettings, client: Any = None) -> None:
        if not settings.bucket:
            raise ValueError("storage.bucket is required for S3 uploads")

        self.bucket = settings.bucket
        self.prefix = settings.prefix.strip("/")

        if client is None:
            client_kwargs: dict[str, Any] = {}
            if settings.endpoint_url:
                client_kwargs["endpoint_url"] = settings.endpoint_url
            if settings.region:
                client_kwargs["region_name"] = settings.region
            client = boto3.client("s3", **client_kwargs)
            logger.debug(
                "Created S3 client for bucket '%s' with endpoint: %s",
                self.bucket,
                settings.endpoint_url or "default",
            )
        self.client = client

    def build_key(self, path: Path, category: UploadCategory) -> str:
        """Object key for a local file."""
        key = f"{category}/{Path(path).name}"
        if self.prefix:
            return f"{self.prefix}/{key}"
        return key

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((BotoCoreError, ClientError)),
        reraise=True,
    )
    def upload(self, path: Path, category: UploadCategory) -> str:
        """Upload one file, retrying transient S3 errors.

        Returns:
            ``s3://`` URI of the uploaded object.

        Raises:
            BotoCoreError, ClientError: If the upload still fails after retries.
        """
        key = self.build_key(path, category)
        self.client.upload_file(str(path), self.bucket, key)
        uri = f"s3://{self.bucket}/{key}"
        logger.info("Uploaded %s to %s", Path(path).name, uri)
        return uri
