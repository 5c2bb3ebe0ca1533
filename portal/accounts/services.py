"""
Account Service

Registration, e-mail verification, sign-in bookkeeping and password flows.

Verification and reset tokens are random strings handed out by e-mail;
only their SHA-256 hash is stored on the profile, together with an expiry.
A token is cleared as soon as it has been used.

Author: Exam Portal Development Team
Version: 1.0.0
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import update_last_login
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from ..exceptions import (
    AuthenticationError,
    DependencyFailure,
    NotFound,
    PermissionDenied,
    StateConflict,
    ValidationError,
)
from ..services.email_service import EmailService
from .models import AccountActivity, Profile

logger = logging.getLogger(__name__)

User = get_user_model()


def _generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class AccountService:
    """
    Account lifecycle operations.

    Args:
        mailer: E-mail service used for verification and password mails
    """

    def __init__(self, mailer: Optional[EmailService] = None):
        self.mailer = mailer or EmailService()

    # --- Helpers ---

    def _validate_new_password(self, password: str, user=None) -> None:
        try:
            validate_password(password, user)
        except DjangoValidationError as e:
            raise ValidationError(
                "Password does not meet the requirements",
                error_code="weak_password",
                details={"password": e.messages},
            )

    def _get_by_email(self, email: str):
        try:
            return User.objects.select_related("profile").get(email__iexact=_normalize_email(email))
        except User.DoesNotExist:
            raise NotFound("No account exists for this email address")

    def _record(self, user, kind: str, status: str, ip_address=None, user_agent: str = "") -> None:
        AccountActivity.objects.create(
            user=user, kind=kind, status=status, ip_address=ip_address, user_agent=user_agent or ""
        )

    def _issue_verification(self, profile: Profile) -> str:
        token = _generate_token()
        hours = settings.EMAIL_VERIFICATION_TIMEOUT_HOURS
        profile.email_verification_token_hash = hash_token(token)
        profile.email_verification_expires = timezone.now() + timedelta(hours=hours)
        profile.save(update_fields=["email_verification_token_hash", "email_verification_expires"])
        self.mailer.send(
            profile.user.email,
            "verify_email",
            {
                "name": profile.user.get_full_name() or profile.user.email,
                "verification_url": f"{settings.FRONTEND_URL}/verify-email?token={token}",
                "expires_in_hours": hours,
            },
            subject="Verify your email address",
        )
        return token

    def _send_quietly(self, user, template_name: str, subject: str) -> None:
        try:
            self.mailer.send(
                user.email, template_name, {"name": user.get_full_name() or user.email}, subject=subject
            )
        except DependencyFailure:
            logger.warning(f"'{template_name}' mail to user {user.pk} was not delivered")

    # --- Registration and verification ---

    def register(self, name: str, email: str, password: str):
        """
        Create an unverified account and send the verification mail.

        The account and the mail form one unit: if the mail cannot be sent
        the account is not created.

        Raises:
            ValidationError: On missing name, invalid or taken e-mail, weak password
            DependencyFailure: If the verification mail cannot be sent
        """
        name = (name or "").strip()
        email = _normalize_email(email)
        if not name:
            raise ValidationError("Name is required", details={"field": "name"})
        try:
            validate_email(email)
        except DjangoValidationError:
            raise ValidationError("Enter a valid email address", details={"field": "email"})
        if User.objects.filter(email__iexact=email).exists():
            raise ValidationError(
                "An account with this email already exists", error_code="email_taken"
            )

        first_name, _, last_name = name.partition(" ")
        candidate = User(username=email, email=email, first_name=first_name, last_name=last_name.strip())
        self._validate_new_password(password, candidate)

        with transaction.atomic():
            candidate.set_password(password)
            candidate.save()
            self._issue_verification(candidate.profile)

        logger.info(f"Registered user {candidate.pk} ({email})")
        return candidate

    def verify_email(self, token: str):
        """
        Mark the account owning ``token`` as verified.

        Raises:
            ValidationError: If the token is unknown or expired
        """
        if not token:
            raise ValidationError("Verification token is required", error_code="invalid_token")
        with transaction.atomic():
            try:
                profile = Profile.objects.select_for_update().select_related("user").get(
                    email_verification_token_hash=hash_token(token),
                    email_verification_expires__gt=timezone.now(),
                )
            except Profile.DoesNotExist:
                raise ValidationError(
                    "Invalid or expired verification token", error_code="invalid_token"
                )
            profile.email_verified = True
            profile.email_verification_token_hash = ""
            profile.email_verification_expires = None
            profile.save(
                update_fields=["email_verified", "email_verification_token_hash", "email_verification_expires"]
            )
            self._record(profile.user, AccountActivity.Kind.VERIFICATION, AccountActivity.Status.SUCCESS)

        self._send_quietly(profile.user, "welcome", "Welcome to the Exam Portal")
        return profile.user

    def resend_verification(self, email: str) -> None:
        user = self._get_by_email(email)
        if user.profile.email_verified:
            raise StateConflict("Email address is already verified", error_code="already_verified")
        with transaction.atomic():
            self._issue_verification(user.profile)

    # --- Sign-in bookkeeping ---

    def authenticate(self, email: str, password: str, ip_address=None, user_agent: str = ""):
        """
        Check credentials and record the login.

        Raises:
            AuthenticationError: On unknown e-mail or wrong password
            PermissionDenied: If the account is inactive or not verified
        """
        try:
            user = User.objects.select_related("profile").get(email__iexact=_normalize_email(email))
        except User.DoesNotExist:
            raise AuthenticationError("Invalid email or password", error_code="invalid_credentials")

        if not user.check_password(password or ""):
            self._record(user, AccountActivity.Kind.LOGIN, AccountActivity.Status.FAILED, ip_address, user_agent)
            raise AuthenticationError("Invalid email or password", error_code="invalid_credentials")

        if not user.is_active:
            self._record(user, AccountActivity.Kind.LOGIN, AccountActivity.Status.FAILED, ip_address, user_agent)
            raise PermissionDenied("This account has been deactivated", error_code="account_inactive")

        if not user.profile.email_verified:
            self._record(user, AccountActivity.Kind.LOGIN, AccountActivity.Status.FAILED, ip_address, user_agent)
            raise PermissionDenied(
                "Please verify your email address before signing in", error_code="email_not_verified"
            )

        with transaction.atomic():
            Profile.objects.filter(pk=user.profile.pk).update(login_count=F("login_count") + 1)
            update_last_login(None, user)
            self._record(user, AccountActivity.Kind.LOGIN, AccountActivity.Status.SUCCESS, ip_address, user_agent)
        return user

    def logout(self, user, ip_address=None, user_agent: str = "") -> None:
        self._record(user, AccountActivity.Kind.LOGOUT, AccountActivity.Status.SUCCESS, ip_address, user_agent)

    # --- Passwords ---

    def request_password_reset(self, email: str) -> None:
        """
        Send a password reset link.

        Raises:
            NotFound: If no account uses the address
            StateConflict: While an earlier reset link is still valid
            DependencyFailure: If the mail cannot be sent
        """
        user = self._get_by_email(email)
        with transaction.atomic():
            profile = Profile.objects.select_for_update().get(pk=user.profile.pk)
            if profile.has_pending_password_reset:
                raise StateConflict(
                    "A password reset link was already sent, please check your inbox",
                    error_code="reset_pending",
                )
            token = _generate_token()
            timeout = settings.PASSWORD_RESET_TIMEOUT
            profile.password_reset_token_hash = hash_token(token)
            profile.password_reset_expires = timezone.now() + timedelta(seconds=timeout)
            profile.save(update_fields=["password_reset_token_hash", "password_reset_expires"])
            self.mailer.send(
                user.email,
                "password_reset",
                {
                    "name": user.get_full_name() or user.email,
                    "reset_url": f"{settings.FRONTEND_URL}/reset-password?token={token}",
                    "expires_in_minutes": timeout // 60,
                },
                subject="Reset your password",
            )

    def reset_password(self, token: str, new_password: str):
        if not token:
            raise ValidationError("Reset token is required", error_code="invalid_token")
        with transaction.atomic():
            try:
                profile = Profile.objects.select_for_update().select_related("user").get(
                    password_reset_token_hash=hash_token(token),
                    password_reset_expires__gt=timezone.now(),
                )
            except Profile.DoesNotExist:
                raise ValidationError("Invalid or expired reset token", error_code="invalid_token")
            user = profile.user
            self._validate_new_password(new_password, user)
            user.set_password(new_password)
            user.save(update_fields=["password"])
            profile.password_reset_token_hash = ""
            profile.password_reset_expires = None
            profile.save(update_fields=["password_reset_token_hash", "password_reset_expires"])
            self._record(user, AccountActivity.Kind.PASSWORD_RESET, AccountActivity.Status.SUCCESS)

        self._send_quietly(user, "password_changed", "Your password was changed")
        return user

    def change_password(self, user, current_password: str, new_password: str) -> None:
        if not user.check_password(current_password or ""):
            raise ValidationError("Current password is incorrect", error_code="wrong_password")
        if current_password == new_password:
            raise ValidationError("New password must differ from the current one")
        self._validate_new_password(new_password, user)
        user.set_password(new_password)
        user.save(update_fields=["password"])
        self._send_quietly(user, "password_changed", "Your password was changed")

    # --- Maintenance ---

    def purge_activity(self, before: Optional[datetime] = None) -> int:
        cutoff = before or AccountActivity.retention_cutoff()
        deleted, _ = AccountActivity.objects.filter(created_at__lt=cutoff).delete()
        if deleted:
            logger.info(f"Purged {deleted} account activity records older than {cutoff}")
        return deleted

    def cleanup_unverified(self, now: Optional[datetime] = None, dry_run: bool = False) -> int:
        """Delete accounts that never verified their e-mail in time."""
        cutoff = (now or timezone.now()) - timedelta(hours=settings.UNVERIFIED_ACCOUNT_TTL_HOURS)
        stale = User.objects.filter(
            profile__email_verified=False,
            is_superuser=False,
            date_joined__lt=cutoff,
            last_login__isnull=True,
        )
        count = stale.count()
        if not dry_run and count:
            stale.delete()
            logger.info(f"Deleted {count} unverified accounts registered before {cutoff}")
        return count
