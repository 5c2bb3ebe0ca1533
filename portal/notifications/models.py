from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


def default_expiry():
    return timezone.now() + timedelta(days=getattr(settings, "NOTIFICATION_RETENTION_DAYS", 30))


class NotificationQuerySet(models.QuerySet):
    def visible(self, now=None):
        return self.filter(expires_at__gt=now or timezone.now())

    def unread(self):
        return self.visible().filter(read=False)


class Notification(models.Model):
    """User-facing notification, removed after the retention window."""

    class Type(models.TextChoices):
        EXAM = "exam", _("Exam")
        COURSE = "course", _("Course")
        SYSTEM = "system", _("System")
        PAYMENT = "payment", _("Payment")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications"
    )
    type = models.CharField(max_length=10, choices=Type.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    link = models.CharField(max_length=500, blank=True, default="")
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(default=default_expiry, db_index=True)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        verbose_name = _("Notification")
        verbose_name_plural = _("Notifications")
        db_table = "portal_notification"
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["user", "read"])]

    def __str__(self):
        return f"{self.title} -> {self.user}"

    def mark_as_read(self) -> None:
        if not self.read:
            self.read = True
            self.save(update_fields=["read"])
