import re
from datetime import timedelta
from unittest import mock

from django.contrib.auth.models import User
from django.core import mail
from django.test import TestCase
from django.utils import timezone

from portal.accounts.models import AccountActivity, Profile
from portal.accounts.services import AccountService
from portal.exceptions import (
    AuthenticationError,
    DependencyFailure,
    NotFound,
    PermissionDenied,
    StateConflict,
    ValidationError,
)

from .helpers import PASSWORD, make_user, seed_roles

TOKEN_PATTERN = re.compile(r"token=([A-Za-z0-9_\-]+)")


def last_token():
    return TOKEN_PATTERN.search(mail.outbox[-1].body).group(1)


class RegistrationTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()

    def setUp(self):
        self.service = AccountService()

    def test_register_creates_unverified_user_and_mails_link(self):
        user = self.service.register("Ada Lovelace", "Ada@Example.com", PASSWORD)

        self.assertEqual(user.email, "ada@example.com")
        self.assertEqual(user.first_name, "Ada")
        self.assertEqual(user.last_name, "Lovelace")
        self.assertFalse(user.profile.email_verified)
        self.assertEqual(user.profile.role.name, "user")
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["ada@example.com"])
        self.assertNotEqual(user.profile.email_verification_token_hash, last_token())

    def test_register_rejects_taken_email(self):
        make_user("ada@example.com")
        with self.assertRaises(ValidationError) as ctx:
            self.service.register("Ada", "ADA@example.com", PASSWORD)
        self.assertEqual(ctx.exception.error_code, "email_taken")

    def test_register_rejects_weak_password(self):
        with self.assertRaises(ValidationError) as ctx:
            self.service.register("Ada", "ada@example.com", "12345")
        self.assertEqual(ctx.exception.error_code, "weak_password")

    def test_failed_mail_rolls_back_registration(self):
        mailer = mock.Mock()
        mailer.send.side_effect = DependencyFailure("Email could not be sent")

        with self.assertRaises(DependencyFailure):
            AccountService(mailer=mailer).register("Ada", "ada@example.com", PASSWORD)

        self.assertFalse(User.objects.filter(email="ada@example.com").exists())

    def test_verify_email(self):
        user = self.service.register("Ada Lovelace", "ada@example.com", PASSWORD)

        self.service.verify_email(last_token())

        profile = Profile.objects.get(user=user)
        self.assertTrue(profile.email_verified)
        self.assertEqual(profile.email_verification_token_hash, "")
        self.assertTrue(user.account_activities.filter(kind=AccountActivity.Kind.VERIFICATION).exists())
        self.assertEqual(mail.outbox[-1].subject, "Welcome to the Exam Portal")

    def test_verification_token_is_single_use(self):
        self.service.register("Ada", "ada@example.com", PASSWORD)
        token = last_token()
        self.service.verify_email(token)

        with self.assertRaises(ValidationError):
            self.service.verify_email(token)

    def test_expired_verification_token(self):
        user = self.service.register("Ada", "ada@example.com", PASSWORD)
        Profile.objects.filter(user=user).update(email_verification_expires=timezone.now() - timedelta(minutes=1))

        with self.assertRaises(ValidationError):
            self.service.verify_email(last_token())

    def test_resend_verification(self):
        self.service.register("Ada", "ada@example.com", PASSWORD)
        first = last_token()

        self.service.resend_verification("ada@example.com")

        self.assertEqual(len(mail.outbox), 2)
        with self.assertRaises(ValidationError):
            self.service.verify_email(first)
        self.service.verify_email(last_token())
        with self.assertRaises(StateConflict):
            self.service.resend_verification("ada@example.com")


class AuthenticationTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.user = make_user("student@example.com")

    def setUp(self):
        self.service = AccountService()

    def test_valid_credentials_are_recorded(self):
        user = self.service.authenticate("STUDENT@example.com", PASSWORD, ip_address="10.0.0.2")

        self.assertEqual(user.pk, self.user.pk)
        self.assertEqual(Profile.objects.get(user=user).login_count, 1)
        activity = AccountActivity.objects.get(user=user)
        self.assertEqual(activity.status, AccountActivity.Status.SUCCESS)
        self.assertEqual(activity.ip_address, "10.0.0.2")

    def test_wrong_password_is_recorded_as_failure(self):
        with self.assertRaises(AuthenticationError):
            self.service.authenticate("student@example.com", "wrong")
        self.assertEqual(
            AccountActivity.objects.get(user=self.user).status, AccountActivity.Status.FAILED
        )

    def test_unknown_email(self):
        with self.assertRaises(AuthenticationError):
            self.service.authenticate("ghost@example.com", PASSWORD)

    def test_unverified_user_cannot_sign_in(self):
        make_user("new@example.com", verified=False)
        with self.assertRaises(PermissionDenied) as ctx:
            self.service.authenticate("new@example.com", PASSWORD)
        self.assertEqual(ctx.exception.error_code, "email_not_verified")

    def test_deactivated_user_cannot_sign_in(self):
        make_user("gone@example.com", is_active=False)
        with self.assertRaises(PermissionDenied) as ctx:
            self.service.authenticate("gone@example.com", PASSWORD)
        self.assertEqual(ctx.exception.error_code, "account_inactive")


class PasswordTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.user = make_user("student@example.com")

    def setUp(self):
        self.service = AccountService()

    def test_reset_password_flow(self):
        self.service.request_password_reset("student@example.com")
        token = last_token()

        self.service.reset_password(token, "An0ther-Secret")

        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("An0ther-Secret"))
        self.assertFalse(Profile.objects.get(user=self.user).has_pending_password_reset)
        with self.assertRaises(ValidationError):
            self.service.reset_password(token, "Y3t-Another-One")

    def test_pending_reset_blocks_a_second_request(self):
        self.service.request_password_reset("student@example.com")
        with self.assertRaises(StateConflict):
            self.service.request_password_reset("student@example.com")
        self.assertEqual(len(mail.outbox), 1)

    def test_reset_link_expires(self):
        self.service.request_password_reset("student@example.com")
        Profile.objects.filter(user=self.user).update(password_reset_expires=timezone.now() - timedelta(seconds=1))

        with self.assertRaises(ValidationError):
            self.service.reset_password(last_token(), "An0ther-Secret")
        self.service.request_password_reset("student@example.com")

    def test_reset_for_unknown_email(self):
        with self.assertRaises(NotFound):
            self.service.request_password_reset("ghost@example.com")

    def test_change_password(self):
        with self.assertRaises(ValidationError) as ctx:
            self.service.change_password(self.user, "wrong", "An0ther-Secret")
        self.assertEqual(ctx.exception.error_code, "wrong_password")

        self.service.change_password(self.user, PASSWORD, "An0ther-Secret")
        self.assertTrue(self.user.check_password("An0ther-Secret"))


class MaintenanceTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()

    def test_cleanup_unverified_accounts(self):
        stale = make_user("stale@example.com", verified=False)
        fresh = make_user("fresh@example.com", verified=False)
        verified = make_user("verified@example.com")
        long_ago = timezone.now() - timedelta(days=30)
        User.objects.filter(pk__in=[stale.pk, verified.pk]).update(date_joined=long_ago)
        service = AccountService()

        self.assertEqual(service.cleanup_unverified(dry_run=True), 1)
        self.assertTrue(User.objects.filter(pk=stale.pk).exists())

        self.assertEqual(service.cleanup_unverified(), 1)
        remaining = set(User.objects.values_list("pk", flat=True))
        self.assertEqual(remaining, {fresh.pk, verified.pk})

    def test_purge_activity(self):
        user = make_user("student@example.com")
        old = AccountActivity.objects.create(user=user, kind=AccountActivity.Kind.LOGIN)
        AccountActivity.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=365))
        AccountActivity.objects.create(user=user, kind=AccountActivity.Kind.LOGOUT)

        self.assertEqual(AccountService().purge_activity(), 1)
        self.assertEqual(AccountActivity.objects.get().kind, AccountActivity.Kind.LOGOUT)
