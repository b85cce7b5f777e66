# app/storage.py
import logging
import shutil
import time
from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

PUBLIC_UPLOAD_PREFIX = "/uploads"


class StorageError(Exception):
    """Saving a file to local disk or to the object store failed."""


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def safe_filename(filename: str | None) -> str:
    name = Path(filename or "").name.strip()
    return name or "upload"


class LocalUploads:
    """Uploaded files kept on local disk and served under ``/uploads``."""

    def __init__(self, upload_dir: str | Path):
        self.root = Path(upload_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, fileobj: BinaryIO, filename: str | None) -> Path:
        target = self.root / f"{_timestamp_ms()}-{safe_filename(filename)}"
        try:
            with target.open("wb") as out:
                shutil.copyfileobj(fileobj, out)
        except OSError as e:
            raise StorageError(f"Could not write {target}: {e}") from e
        logger.info(f"Saved upload to {target}")
        return target

    @staticmethod
    def public_path(path: Path) -> str:
        return f"{PUBLIC_UPLOAD_PREFIX}/{path.name}"


class ObjectStore:
    """S3 bucket holding images that the search API fetches by URL."""

    def __init__(self, bucket: str, region: str, client=None, endpoint_url: str | None = None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> "ObjectStore":
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
        return cls(
            settings.aws_bucket_name,
            settings.aws_region,
            client=client,
            endpoint_url=settings.aws_endpoint_url,
        )

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quote(key)}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quote(key)}"

    def upload_file(self, path: Path, filename: str | None, content_type: str | None) -> str:
        """Stream ``path`` into the bucket and return its public URL."""
        key = f"{_timestamp_ms()}_{safe_filename(filename)}"
        try:
            with open(path, "rb") as body:
                self.client.upload_fileobj(
                    body,
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": content_type or "application/octet-stream"},
                )
        except (BotoCoreError, ClientError, OSError) as e:
            raise StorageError(f"Could not upload {key} to bucket {self.bucket}: {e}") from e
        url = self.public_url(key)
        logger.info(f"Uploaded {key} to object storage: {url}")
        return url
