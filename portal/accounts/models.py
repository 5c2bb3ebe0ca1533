"""
Exam Portal Account Models

This module defines the account-related models of the exam portal,
extending Django's built-in User model with a profile that carries the
user's role, e-mail verification and password reset state.

Models:
- Role: Named set of capabilities (system roles are seeded)
- Profile: Extended user information, exactly one per user
- AccountActivity: Append-only log of logins, logouts and account events

Author: Exam Portal Development Team
Version: 1.0.0
"""

from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from ..common.models import TimeStampedModel


class Role(TimeStampedModel):
    """
    Role with a list of capability strings.

    A capability of ``*`` grants every capability. System roles are created
    and restored by the role registry seed and cannot be deleted.
    """

    name = models.CharField(
        max_length=50,
        unique=True,
        verbose_name=_("Name"),
        help_text=_("Unique role identifier, stored in lower case"),
    )
    display_name = models.CharField(max_length=100, verbose_name=_("Display Name"))
    description = models.TextField(blank=True, default="", verbose_name=_("Description"))
    permissions = models.JSONField(
        default=list,
        blank=True,
        verbose_name=_("Permissions"),
        help_text=_("List of capability strings, '*' grants all capabilities"),
    )
    is_system = models.BooleanField(
        default=False,
        verbose_name=_("System Role"),
        help_text=_("System roles are seeded and cannot be deleted"),
    )

    class Meta:
        verbose_name = _("Role")
        verbose_name_plural = _("Roles")
        db_table = "portal_role"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.display_name or self.name

    def save(self, *args, **kwargs):
        if self.name:
            self.name = self.name.strip().lower()
        super().save(*args, **kwargs)

    @property
    def is_wildcard(self) -> bool:
        return "*" in (self.permissions or [])


class Profile(models.Model):
    """
    Extended user profile model for the exam portal.

    Attributes:
        user: One-to-one relationship with Django User model
        role: The single role of the user
        email_verified: Unverified accounts cannot sign in
        email_verification_token_hash: SHA-256 of the pending verification token
        password_reset_token_hash: SHA-256 of the pending password reset token
        login_count: Number of successful sign-ins

    The profile is created automatically (with the default role) when a
    user is saved for the first time.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        verbose_name=_("User"),
        help_text=_("Associated user account"),
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.PROTECT,
        related_name="profiles",
        verbose_name=_("Role"),
    )

    email_verified = models.BooleanField(default=False, verbose_name=_("Email Verified"))
    email_verification_token_hash = models.CharField(max_length=64, blank=True, default="")
    email_verification_expires = models.DateTimeField(null=True, blank=True)
    password_reset_token_hash = models.CharField(max_length=64, blank=True, default="")
    password_reset_expires = models.DateTimeField(null=True, blank=True)

    login_count = models.PositiveIntegerField(default=0, verbose_name=_("Login Count"))

    notify_by_email = models.BooleanField(default=True, verbose_name=_("Email Notifications"))
    notify_in_browser = models.BooleanField(default=True, verbose_name=_("Browser Notifications"))

    class Meta:
        verbose_name = _("User Profile")
        verbose_name_plural = _("User Profiles")
        db_table = "portal_profile"

    def __str__(self) -> str:
        return f"{self.user.username} Profile"

    def __repr__(self) -> str:
        return f"<Profile(user={self.user.username}, role={self.role.name}, verified={self.email_verified})>"

    @property
    def has_pending_password_reset(self) -> bool:
        return bool(
            self.password_reset_token_hash
            and self.password_reset_expires
            and self.password_reset_expires > timezone.now()
        )


class AccountActivity(models.Model):
    """Append-only record of account events, kept for a bounded time."""

    class Kind(models.TextChoices):
        LOGIN = "login", _("Login")
        LOGOUT = "logout", _("Logout")
        VERIFICATION = "verification", _("Email Verification")
        PASSWORD_RESET = "password_reset", _("Password Reset")

    class Status(models.TextChoices):
        SUCCESS = "success", _("Success")
        FAILED = "failed", _("Failed")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="account_activities",
    )
    kind = models.CharField(max_length=20, choices=Kind.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.SUCCESS)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Account Activity")
        verbose_name_plural = _("Account Activities")
        db_table = "portal_account_activity"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.user} {self.kind} ({self.status})"

    @classmethod
    def retention_cutoff(cls, now=None):
        now = now or timezone.now()
        return now - timedelta(days=getattr(settings, "ACCOUNT_ACTIVITY_RETENTION_DAYS", 180))
