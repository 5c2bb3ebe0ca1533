from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from portal.accounts.models import AccountActivity

from .helpers import PASSWORD, make_user, seed_roles

"""
    Tests for signing in, the JWT cookies and refreshing access tokens.
    Tokens are only ever handed out as HTTP-only cookies.
"""

SIGNIN_URL = "/api/portal/auth/signin/"
REFRESH_URL = "/api/portal/auth/refresh/"
SIGNOUT_URL = "/api/portal/auth/signout/"
ME_URL = "/api/portal/auth/me/"


class TokenTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.user = make_user("student@example.com", first_name="Test", last_name="User")

    def setUp(self):
        cache.clear()
        response = self.client.post(
            SIGNIN_URL, {"email": "student@example.com", "password": PASSWORD}, content_type="application/json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.access_token = response.cookies.get("access_token")
        self.refresh_token = response.cookies.get("refresh_token")
        self.body = response.json()

    def test_no_jwt_in_body(self):
        self.assertNotIn("access", self.body)
        self.assertNotIn("refresh", self.body)
        self.assertEqual(self.body["user"]["email"], "student@example.com")

    def test_cookies_are_http_only(self):
        self.assertTrue(self.access_token["httponly"])
        self.assertTrue(self.refresh_token["httponly"])

    def test_access_cookie_authenticates(self):
        response = self.client.get(ME_URL)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["role"], "user")
        self.assertIn("take_exam", response.json()["capabilities"])

    def test_bearer_header_authenticates(self):
        self.client.cookies.clear()
        response = self.client.get(ME_URL, HTTP_AUTHORIZATION=f"Bearer {self.access_token.value}")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_refresh_token_success(self):
        self.client.cookies["refresh_token"] = self.refresh_token.value
        response = self.client.post(REFRESH_URL)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.cookies["access_token"])

    def test_refresh_token_failure(self):
        self.client.cookies["refresh_token"] = "bad token"
        response = self.client.post(REFRESH_URL)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "token_invalid")

    def test_refresh_token_missing(self):
        del self.client.cookies["refresh_token"]
        response = self.client.post(REFRESH_URL)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "token_missing")

    def test_signout_blacklists_refresh_token(self):
        refresh = self.refresh_token.value
        response = self.client.post(SIGNOUT_URL)
        self.assertEqual(response.status_code, status.HTTP_205_RESET_CONTENT)
        self.assertEqual(response.cookies["access_token"].value, "")
        self.assertTrue(
            AccountActivity.objects.filter(user=self.user, kind=AccountActivity.Kind.LOGOUT).exists()
        )

        self.client.cookies["refresh_token"] = refresh
        response = self.client.post(REFRESH_URL)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class SignInTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        make_user("student@example.com")
        make_user("pending@example.com", verified=False)

    def setUp(self):
        cache.clear()

    def signin(self, email, password=PASSWORD):
        return self.client.post(
            SIGNIN_URL, {"email": email, "password": password}, content_type="application/json"
        )

    def test_wrong_password(self):
        response = self.signin("student@example.com", "nope")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.json()["code"], "invalid_credentials")
        self.assertNotIn("access_token", response.cookies)

    def test_unverified_account(self):
        response = self.signin("pending@example.com")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()["code"], "email_not_verified")

    def test_signin_is_throttled_per_email(self):
        for _ in range(5):
            self.signin("student@example.com", "nope")
        response = self.signin("student@example.com")
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.get(ME_URL)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
