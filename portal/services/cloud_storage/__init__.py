"""
Storage Services Package for the Exam Portal

- CloudStorageService: S3-compatible bucket (Wasabi, AWS S3, MinIO) via boto3
- LocalStorageService: Django default storage (MEDIA_ROOT)
- get_image_storage: Factory selecting the backend from QUESTION_IMAGE_STORAGE

Author: Exam Portal Development Team
Version: 1.0.0
"""

from .cloud_storage_service import (
    CloudStorageService,
    LocalStorageService,
    get_image_storage,
)

__all__ = [
    "CloudStorageService",
    "LocalStorageService",
    "get_image_storage",
]
