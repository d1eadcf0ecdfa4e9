import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .errors import ProcessingError, ProcessingErrorType

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_EXTENSION = ".mp3"


def get_s3_client(config: StorageConfig):
    """
    SDK client for server-side upload/download against S3, R2 or MinIO.
    """
    session = boto3.session.Session(
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region,
    )
    return session.client(
        "s3",
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def asset_storage_key(namespace: str, item_id: str, asset_name: str) -> str:
    """Deterministic key: ``{namespace}/{item_id}/{asset_name}``."""
    return f"{namespace.strip('/')}/{item_id}/{asset_name}"


def cdn_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/{key}"


def original_extension(name: str) -> str:
    suffix = PurePosixPath(name).suffix.lower()
    return suffix if suffix else DEFAULT_AUDIO_EXTENSION


@dataclass(frozen=True)
class UploadResult:
    cdn_url: str
    storage_key: str
    size_bytes: int


class ObjectStore:
    """Get-by-key / put-by-key over a single bucket."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self.client = client if client is not None else get_s3_client(config)

    def cdn_url(self, key: str) -> str:
        return cdn_url(self.config.cdn_base_url, key)

    def fetch(self, storage_key: str, work_dir: Path) -> Path:
        """
        Stream ``storage_key`` into ``work_dir/original<ext>``.
        Missing, empty or interrupted downloads raise DOWNLOAD_FAILED.
        """
        work_dir.mkdir(parents=True, exist_ok=True)
        local_path = work_dir / f"original{original_extension(storage_key)}"
        try:
            self.client.download_file(self.config.bucket, storage_key, str(local_path))
        except (ClientError, BotoCoreError, Boto3Error, OSError) as e:
            raise ProcessingError(
                ProcessingErrorType.DOWNLOAD_FAILED,
                f"Failed to download {storage_key}: {e}",
                step="fetch",
            ) from e

        if not local_path.exists() or local_path.stat().st_size == 0:
            raise ProcessingError(
                ProcessingErrorType.DOWNLOAD_FAILED,
                f"Empty object for {storage_key}",
                step="fetch",
            )
        logger.info("downloaded %s to %s (%d bytes)", storage_key, local_path, local_path.stat().st_size)
        return local_path

    def publish(self, local_path: Path, storage_key: str, content_type: str) -> UploadResult:
        """Upload one generated artifact and report where it landed."""
        try:
            size = os.path.getsize(local_path)
            self.client.upload_file(
                str(local_path),
                self.config.bucket,
                storage_key,
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError, Boto3Error, OSError) as e:
            raise ProcessingError(
                ProcessingErrorType.UPLOAD_FAILED,
                f"Failed to upload {storage_key}: {e}",
                step="publish",
            ) from e

        logger.info("uploaded %s (%d bytes)", storage_key, size)
        return UploadResult(cdn_url=self.cdn_url(storage_key), storage_key=storage_key, size_bytes=size)
