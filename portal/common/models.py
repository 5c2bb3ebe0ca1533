"""
Shared abstract models of the exam portal.

- TimeStampedModel: creation and modification timestamps
- SoftDeleteModel: records that are hidden instead of deleted

Author: Exam Portal Development Team
Version: 1.0.0
"""

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created at"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated at"))

    class Meta:
        abstract = True


class ActiveManager(models.Manager):
    """Manager that hides soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().filter(is_active=True)


class SoftDeleteModel(models.Model):
    """
    Abstract base for records that are soft deleted.

    The default manager ``objects`` only returns active rows, ``all_objects``
    returns every row including the soft-deleted ones.
    """

    is_active = models.BooleanField(
        default=True,
        verbose_name=_("Active"),
        help_text=_("Inactive records are treated as deleted"),
    )
    deleted_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Deleted at"))
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
        verbose_name=_("Deleted by"),
    )

    objects = ActiveManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    def soft_delete(self, user=None) -> None:
        self.is_active = False
        self.deleted_at = timezone.now()
        self.deleted_by = user
        self.save(update_fields=["is_active", "deleted_at", "deleted_by"])

    def restore(self, user=None) -> None:
        self.is_active = True
        self.deleted_at = None
        self.deleted_by = None
        self.save(update_fields=["is_active", "deleted_at", "deleted_by"])
