"""
Storage Service for Exam Portal Question Images

Uploads and deletes question images. Two backends share the same interface
``upload(file) -> url`` and ``delete(url)``:

- CloudStorageService: S3-compatible bucket configured from the STORAGE_*
  settings, public object URLs derived from the endpoint
- LocalStorageService: Django's default storage below MEDIA_ROOT

Failures while uploading raise DependencyFailure so the enclosing catalog
operation is rolled back. Failures while deleting are logged only, an
orphaned file never blocks a catalog operation.

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
import os
import uuid
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.core.files.storage import default_storage

from ...exceptions import DependencyFailure, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"}


def _build_object_key(prefix: str, filename: str) -> str:
    extension = os.path.splitext(filename or "")[1].lower()
    if extension not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError(
            "Unsupported image type",
            error_code="unsupported_file_type",
            details={"extension": extension or None},
        )
    return f"{prefix.strip('/')}/{uuid.uuid4().hex}{extension}"


class CloudStorageService:
    """
    Storage operations against an S3-compatible bucket.

    Args:
        bucket_name: Target bucket, defaults to STORAGE_BUCKET_NAME
        prefix: Key prefix for uploaded objects
        client: Pre-built boto3 client, mainly for tests
    """

    def __init__(self, bucket_name: Optional[str] = None, prefix: Optional[str] = None, client=None):
        self.bucket_name = bucket_name or settings.STORAGE_BUCKET_NAME
        self.prefix = prefix or getattr(settings, "QUESTION_IMAGE_PREFIX", "questions")
        self.endpoint_url = settings.STORAGE_ENDPOINT_URL
        self.client = client or self._initialize_client()

    def _initialize_client(self):
        """Initializes the S3 client from settings."""
        client = boto3.client(
            "s3",
            aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID,
            aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
            region_name=settings.STORAGE_REGION,
            endpoint_url=self.endpoint_url,
        )
        logger.info(f"Cloud storage client initialised for bucket {self.bucket_name}")
        return client

    def _generate_cloud_url(self, object_key: str) -> str:
        # Public URL: endpoint without the "s3." host prefix
        public_endpoint = self.endpoint_url.replace("s3.", "")
        return f"{public_endpoint}/{self.bucket_name}/{object_key}"

    def _key_from_url(self, url: str) -> Optional[str]:
        marker = f"/{self.bucket_name}/"
        if not url or marker not in url:
            return None
        return url.split(marker, 1)[1]

    def upload(self, file) -> str:
        """
        Upload a file object and return its public URL.

        Raises:
            DependencyFailure: If the bucket is unreachable or rejects the upload
        """
        object_key = _build_object_key(self.prefix, getattr(file, "name", ""))
        content_type = getattr(file, "content_type", None) or "application/octet-stream"
        try:
            self.client.upload_fileobj(
                file,
                self.bucket_name,
                object_key,
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Upload of {object_key} failed: {e}")
            raise DependencyFailure(
                "Image upload failed", details={"key": object_key}
            ) from e

        logger.info(f"Uploaded {object_key} to bucket {self.bucket_name}")
        return self._generate_cloud_url(object_key)

    def delete(self, url: str) -> bool:
        """Delete the object behind a URL produced by upload()."""
        object_key = self._key_from_url(url)
        if not object_key:
            logger.warning(f"Cannot derive object key from URL {url}")
            return False
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=object_key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Deleting {object_key} failed: {e}")
            return False
        logger.info(f"Deleted {object_key} from bucket {self.bucket_name}")
        return True

    def test_connection(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Cloud storage connection failed: {e}")
            return False
        return True


class LocalStorageService:
    """Storage operations against Django's default storage."""

    def __init__(self, storage=None, prefix: Optional[str] = None):
        self.storage = storage or default_storage
        self.prefix = prefix or getattr(settings, "QUESTION_IMAGE_PREFIX", "questions")

    def upload(self, file) -> str:
        object_key = _build_object_key(self.prefix, getattr(file, "name", ""))
        try:
            saved_name = self.storage.save(object_key, file)
        except OSError as e:
            logger.error(f"Saving {object_key} failed: {e}")
            raise DependencyFailure("Image upload failed", details={"key": object_key}) from e
        return self.storage.url(saved_name)

    def delete(self, url: str) -> bool:
        media_url = settings.MEDIA_URL
        if not url or media_url not in url:
            return False
        name = url.split(media_url, 1)[1]
        try:
            self.storage.delete(name)
        except OSError as e:
            logger.error(f"Deleting {name} failed: {e}")
            return False
        return True


def get_image_storage():
    """Return the storage backend configured by QUESTION_IMAGE_STORAGE."""
    backend = getattr(settings, "QUESTION_IMAGE_STORAGE", "local").lower()
    if backend == "s3":
        return CloudStorageService()
    return LocalStorageService()
