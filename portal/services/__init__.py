"""
Exam Portal Services Package

Collaborators used by the domain services of the portal:
- cloud_storage/: Question image storage (S3-compatible bucket or local media)
- email_service: Templated e-mail delivery

Author: Exam Portal Development Team
Version: 1.0.0
"""

from .cloud_storage import CloudStorageService, LocalStorageService, get_image_storage
from .email_service import EmailService

__all__ = [
    "CloudStorageService",
    "LocalStorageService",
    "get_image_storage",
    "EmailService",
]
