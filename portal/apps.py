"""
Exam Portal Application Configuration

This module contains the Django application configuration for the exam portal.
Besides the application metadata it builds the role registry once at startup
and connects the signal handlers of the accounts package.

Author: Exam Portal Development Team
Version: 1.0.0
"""

from django.apps import AppConfig
from django.conf import settings


class PortalConfig(AppConfig):
    """
    Configuration class for the exam portal Django application.

    Attributes:
        default_auto_field: Default primary key field type for models
        name: Application name for Django registration
        verbose_name: Human-readable application name for admin interface
        role_registry: Registry of roles and capabilities, built in ready()
    """

    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "portal"
    verbose_name: str = "Exam Portal"

    def ready(self) -> None:
        """
        Initialize the application when Django starts.

        Builds the role registry (no database access happens here) and
        registers the signal handlers. Safe to call multiple times during
        testing or application reloads.
        """
        super().ready()

        from .accounts.registry import RoleRegistry

        self.role_registry = RoleRegistry(
            default_role_name=getattr(settings, "PORTAL_DEFAULT_ROLE", "user")
        )

        # Connect signal handlers
        from .accounts import signals  # noqa: F401
