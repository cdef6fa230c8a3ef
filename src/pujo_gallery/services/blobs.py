"""S3 gateway for the two image variants of a submission."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pujo_gallery.core.errors import BLOBS, UpstreamFailure
from pujo_gallery.core.settings import Settings, settings

logger = logging.getLogger(__name__)

PUBLIC_CONTENT_TYPE = "image/webp"


@dataclass(frozen=True)
class BlobConfig:
    """Immutable configuration for blob operations."""

    bucket: str
    public_base_url: str
    cache_control: str


def load_blob_config(config: Settings | None = None) -> BlobConfig:
    config = config or settings
    return BlobConfig(
        bucket=config.s3_bucket_name,
        public_base_url=config.public_base_url,
        cache_control=config.s3_cache_control,
    )


def create_s3_client(config: Settings | None = None) -> Any:
    """Build a boto3 S3 client with bounded timeouts and retry attempts."""
    config = config or settings
    return boto3.client(
        "s3",
        region_name=config.aws_region,
        endpoint_url=config.s3_endpoint_url,
        config=Config(
            connect_timeout=config.s3_connect_timeout_seconds,
            read_timeout=config.s3_read_timeout_seconds,
            retries={"max_attempts": config.s3_max_attempts, "mode": "standard"},
        ),
    )


class BlobGateway:
    """Writes and deletes the public (watermarked) and archival (original) blobs."""

    def __init__(self, client: Any, config: BlobConfig | None = None) -> None:
        self._s3 = client
        self.config = config or load_blob_config()

    def public_url(self, key: str) -> str:
        return f"{self.config.public_base_url}/{key}"

    async def put_public(self, key: str, body: bytes) -> str:
        """Store the watermarked image as a world-readable object.

        Returns:
            The public URL of the object
        """
        await self._call(
            "put",
            key,
            Bucket=self.config.bucket,
            Key=key,
            Body=body,
            ContentType=PUBLIC_CONTENT_TYPE,
            ACL="public-read",
            CacheControl=self.config.cache_control,
        )
        return self.public_url(key)

    async def put_archive(self, key: str, body: bytes, content_type: str) -> None:
        """Store the untouched upload under the private archival key."""
        await self._call(
            "put",
            key,
            Bucket=self.config.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            CacheControl=self.config.cache_control,
        )

    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key succeeds."""
        await self._call("delete", key, Bucket=self.config.bucket, Key=key)

    def close(self) -> None:
        self._s3.close()

    async def _call(self, operation: str, key: str, **params: Any) -> None:
        method = self._s3.put_object if operation == "put" else self._s3.delete_object
        try:
            await asyncio.to_thread(method, **params)
        except (BotoCoreError, ClientError) as err:
            logger.error("Blob %s failed for key %s: %s", operation, key, err)
            raise UpstreamFailure(
                f"Blob {operation} failed",
                submission_id=key.rsplit("/", 1)[-1],
                collaborator=BLOBS,
            ) from err
