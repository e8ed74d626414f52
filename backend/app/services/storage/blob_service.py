"""Blob storage for uploaded files (S3-compatible API)"""
import logging
from typing import Optional
from urllib.parse import quote
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError

from app.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an object cannot be stored"""


def _encode_object_key_for_url(object_key: str) -> str:
    """URL-encode each path segment of an object key, keeping '/' separators

    Example:
        "inbox/abc/Rapport final.pdf" -> "inbox/abc/Rapport%20final.pdf"
    """
    if not object_key:
        return ""
    return '/'.join(quote(segment, safe='') for segment in object_key.split('/'))


class BlobStorageService:
    """Service for storing files in S3-compatible buckets"""

    def __init__(self):
        """Initialize the S3 client from settings"""
        if not settings.STORAGE_ACCESS_KEY_ID or not settings.STORAGE_SECRET_ACCESS_KEY:
            raise ValueError(
                "Storage configuration is missing. Set STORAGE_ACCESS_KEY_ID and "
                "STORAGE_SECRET_ACCESS_KEY environment variables."
            )
        if not settings.STORAGE_PUBLIC_URL:
            raise ValueError("STORAGE_PUBLIC_URL is not set. Set STORAGE_PUBLIC_URL environment variable.")

        self.public_url = settings.STORAGE_PUBLIC_URL.rstrip('/')
        self.s3_client = boto3.client(
            's3',
            endpoint_url=settings.STORAGE_ENDPOINT_URL or None,
            aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID,
            aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
            region_name=settings.STORAGE_REGION,
            config=Config(signature_version='s3v4')
        )
        logger.info("BlobStorageService initialized")

    def public_url_for(self, bucket: str, object_key: str) -> str:
        """Public URL of an object"""
        return f"{self.public_url}/{bucket}/{_encode_object_key_for_url(object_key)}"

    def upload_bytes(
        self,
        content: bytes,
        object_key: str,
        bucket: str,
        content_type: Optional[str] = None
    ) -> str:
        """Store content under object_key (overwriting) and return its public URL

        Raises:
            ValueError: If object_key is empty
            StorageError: If the upload fails
        """
        if not object_key:
            raise ValueError("object_key cannot be empty")

        params = {'Bucket': bucket, 'Key': object_key, 'Body': content}
        if content_type:
            params['ContentType'] = content_type

        try:
            self.s3_client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {object_key} to bucket {bucket}: {e}", exc_info=True)
            raise StorageError(f"Failed to upload {object_key}: {e}") from e

        logger.info(f"Uploaded {object_key} ({len(content)} bytes) to bucket {bucket}")
        return self.public_url_for(bucket, object_key)


# Global storage service instance (lazy initialization)
_storage_service: Optional[BlobStorageService] = None


def get_storage_service() -> BlobStorageService:
    """Get or create storage service instance (lazy initialization)

    Raises:
        ValueError: If storage configuration is missing
    """
    global _storage_service
    if _storage_service is None:
        _storage_service = BlobStorageService()
    return _storage_service


def upload_file(content: bytes, object_key: str, bucket: str, content_type: Optional[str] = None) -> str:
    """Upload content and return its public URL"""
    return get_storage_service().upload_bytes(content, object_key, bucket, content_type)
