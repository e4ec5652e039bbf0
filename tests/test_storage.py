"""Tests for S3 uploads of finished dump files."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from db_dumper.config.models import StorageSettings
from db_dumper.storage import build_uploader
from db_dumper.storage.s3 import S3Uploader


def _client_error() -> ClientError:
    return ClientError({"Error": {"Code": "503", "Message": "Slow Down"}}, "PutObject")


class TestBuildUploader:
    def test_no_bucket_disables_uploads(self) -> None:
        assert build_uploader(StorageSettings()) is None

    def test_bucket_builds_s3_uploader(self) -> None:
        with patch("db_dumper.storage.s3.boto3.client") as mock_client:
            uploader = build_uploader(
                StorageSettings(bucket="backups", endpoint_url="http://minio:9000", region="eu-west-1")
            )

        assert isinstance(uploader, S3Uploader)
        mock_client.assert_called_once_with(
            "s3", endpoint_url="http://minio:9000", region_name="eu-west-1"
        )


class TestS3Uploader:
    """Key layout, upload calls and retries."""

    def test_bucket_required(self) -> None:
        with pytest.raises(ValueError, match="bucket"):
            S3Uploader(StorageSettings(), client=MagicMock())

    def test_key_with_prefix(self) -> None:
        uploader = S3Uploader(StorageSettings(bucket="b", prefix="/tidb/prod/"), client=MagicMock())
        assert uploader.build_key(Path("d/shop.orders.0.sql"), "table") == (
            "tidb/prod/table/shop.orders.0.sql"
        )

    def test_key_without_prefix(self) -> None:
        uploader = S3Uploader(StorageSettings(bucket="b"), client=MagicMock())
        assert uploader.build_key(Path("shop.orders-schema.sql"), "schema") == (
            "schema/shop.orders-schema.sql"
        )

    def test_upload(self, tmp_path: Path) -> None:
        client = MagicMock()
        uploader = S3Uploader(StorageSettings(bucket="backups"), client=client)
        path = tmp_path / "shop.orders.sql"

        uri = uploader.upload(path, "table")

        client.upload_file.assert_called_once_with(str(path), "backups", "table/shop.orders.sql")
        assert uri == "s3://backups/table/shop.orders.sql"

    @patch("time.sleep")
    def test_transient_error_retried(self, _sleep: MagicMock, tmp_path: Path) -> None:
        client = MagicMock()
        client.upload_file.side_effect = [_client_error(), None]
        uploader = S3Uploader(StorageSettings(bucket="backups"), client=client)

        uploader.upload(tmp_path / "t.sql", "table")

        assert client.upload_file.call_count == 2

    @patch("time.sleep")
    def test_gives_up_after_three_attempts(self, _sleep: MagicMock, tmp_path: Path) -> None:
        client = MagicMock()
        client.upload_file.side_effect = _client_error()
        uploader = S3Uploader(StorageSettings(bucket="backups"), client=client)

        with pytest.raises(ClientError):
            uploader.upload(tmp_path / "t.sql", "table")

        assert client.upload_file.call_count == 3

    def test_other_errors_not_retried(self, tmp_path: Path) -> None:
        client = MagicMock()
        client.upload_file.side_effect = FileNotFoundError("gone")
        uploader = S3Uploader(StorageSettings(bucket="backups"), client=client)

        with pytest.raises(FileNotFoundError):
            uploader.upload(tmp_path / "t.sql", "table")

        assert client.upload_file.call_count == 1
