"""S3-compatible object store implementation.

This module provides an object store that works with AWS S3, MinIO, and other
S3-compatible services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator

from exports_rw.infra.storage.client import StorageError, StoredObject

if TYPE_CHECKING:
    from exports_rw.common.config import Settings

logger = logging.getLogger("exports_rw.storage")

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


def _error_code(exc: Exception) -> str | None:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    code = response.get("Error", {}).get("Code")
    return str(code) if code is not None else None


class S3ObjectStore:
    """S3-compatible object store bound to a single bucket.

    Uses boto3 for all storage operations.
    """

    def __init__(self, *, settings: "Settings", client: Any | None = None) -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.
            client: Optional pre-built boto3 client.

        Raises:
            StorageError: If boto3 is not installed or no bucket is configured.
        """
        if not settings.S3_BUCKET:
            raise StorageError("S3_BUCKET is required for the s3 storage backend")
        self._settings = settings
        self._bucket = settings.S3_BUCKET
        self._client = client if client is not None else self._build_client(settings)

    @property
    def bucket(self) -> str:
        return self._bucket

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        # one pooled connection per export worker plus spares for point requests
        config = Config(
            s3={"addressing_style": addressing_style},
            max_pool_connections=int(settings.EXPORT_WORKERS) + 10,
        )

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store an object."""
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        try:
            self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to put object {key}: {exc}") from exc

    def get_object(self, *, key: str) -> StoredObject | None:
        """Fetch an object, returning None when the key does not exist."""
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except Exception as exc:
            if _error_code(exc) in NOT_FOUND_CODES:
                return None
            raise StorageError(f"Failed to get object {key}: {exc}") from exc

        return StoredObject(
            key=key,
            body=response["Body"],
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def delete_object(self, *, key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception as exc:
            raise StorageError(f"Failed to delete object {key}: {exc}") from exc

    def iter_key_pages(
        self, *, prefix: str | None = None, page_size: int | None = None
    ) -> Iterator[list[str]]:
        """Yield one list of keys per ListObjectsV2 page."""
        params: dict[str, Any] = {"Bucket": self._bucket}
        if prefix:
            params["Prefix"] = prefix
        if page_size:
            params["PaginationConfig"] = {"PageSize": int(page_size)}

        try:
            pages = self._client.get_paginator("list_objects_v2").paginate(**params)
            for page in pages:
                yield [obj["Key"] for obj in page.get("Contents") or ()]
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to list objects: {exc}") from exc

    def head_exists(self, *, key: str) -> bool:
        """Check whether an object exists without downloading it."""
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except Exception as exc:
            if _error_code(exc) in NOT_FOUND_CODES:
                return False
            raise StorageError(f"Failed to get object metadata: {exc}") from exc
        return True

    def check_access(self) -> None:
        """Run a HEAD request against the bucket."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except Exception as exc:
            logger.error(
                "s3_health_check_failed bucket=%s error=%s",
                self._bucket,
                exc,
                extra={"extra": {"bucket": self._bucket, "error": str(exc)}},
            )
            raise StorageError(f"Cannot access bucket {self._bucket}: {exc}") from exc
