"""S3-compatible object storage for generated reports, using MinIO.

Provides:
- Bucket auto-creation
- Retry with exponential backoff on S3 errors
- Presigned URL generation for report downloads
- Error reporting through result models instead of exceptions

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
from datetime import timedelta

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        object_name: Full object path in storage
        bucket: Bucket name
        error: Error message if operation failed
        etag: Object ETag (hash) if available
        size: Object size in bytes if available
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None


class PresignedUrlResult(BaseModel):
    """Result of presigned URL generation."""

    success: bool
    url: str | None = None
    expires_in_seconds: int | None = None
    error: str | None = None


class StorageService:
    """Report file storage on an S3-compatible backend."""

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """True if storage is enabled and credentials are set."""
        if not self.settings.storage_enabled:
            return False

        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable."""
        if not self.is_available():
            return False

        try:
            client = self._get_client()
            client.list_buckets()
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_exists_cache.add(bucket)

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _put(self, bucket: str, object_name: str, data: bytes, content_type: str):  # type: ignore[no-untyped-def]
        client = self._get_client()
        self._ensure_bucket(bucket)
        return client.put_object(
            bucket_name=bucket,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str,
        bucket: str | None = None,
    ) -> StorageResult:
        """Upload bytes to storage.

        Args:
            data: Bytes to upload
            object_name: Target object name in storage
            content_type: MIME type
            bucket: Target bucket (defaults to settings.storage_bucket)

        Returns:
            StorageResult with upload details
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            result = self._put(bucket, object_name, data, content_type)
            logger.info(f"Uploaded {object_name} to {bucket} ({len(data)} bytes)")
            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
                etag=result.etag,
                size=len(data),
            )

        except S3Error as e:
            logger.error(f"S3 error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )

    def get_presigned_url(
        self,
        object_name: str,
        bucket: str | None = None,
        expires_seconds: int | None = None,
    ) -> PresignedUrlResult:
        """Generate presigned URL for report download.

        Args:
            object_name: Object name in storage
            bucket: Bucket name (defaults to settings.storage_bucket)
            expires_seconds: URL lifetime (defaults to settings.storage_url_expiry_seconds)
        """
        bucket = bucket or self.settings.storage_bucket
        expires_seconds = expires_seconds or self.settings.storage_url_expiry_seconds

        try:
            client = self._get_client()

            url = client.presigned_get_object(
                bucket_name=bucket,
                object_name=object_name,
                expires=timedelta(seconds=expires_seconds),
            )

            return PresignedUrlResult(
                success=True,
                url=url,
                expires_in_seconds=expires_seconds,
            )

        except S3Error as e:
            logger.error(f"S3 error generating presigned URL for {object_name}: {e}")
            return PresignedUrlResult(
                success=False,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error generating presigned URL for {object_name}: {e}")
            return PresignedUrlResult(
                success=False,
                error=str(e),
            )

    def delete_object(
        self,
        object_name: str,
        bucket: str | None = None,
    ) -> StorageResult:
        """Delete object from storage."""
        bucket = bucket or self.settings.storage_bucket

        try:
            client = self._get_client()
            client.remove_object(bucket_name=bucket, object_name=object_name)

            logger.info(f"Deleted {object_name} from {bucket}")

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
            )

        except S3Error as e:
            logger.error(f"S3 error deleting {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error deleting {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )
