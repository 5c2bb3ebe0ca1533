"""
Exam Portal Authentication Views

This module provides the public account endpoints and the JWT cookie
handling of the exam portal.

Views:
- RegisterView / VerifyEmailView / ResendVerificationView: Sign-up flow
- SignInView: Credential check, JWT pair stored in HTTP-only cookies
- CookieTokenRefreshView: Refresh from the refresh cookie
- SignOutView: Token blacklisting and cookie removal
- ForgotPasswordView / ResetPasswordView / ChangePasswordView
- CurrentUserView: The signed-in user's own data

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging

from django.conf import settings
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from backend.custom_auth import ACCESS_COOKIE, REFRESH_COOKIE
from ...common.request import get_client_ip, get_user_agent
from ..serializers import (
    ChangePasswordSerializer,
    EmailSerializer,
    PasswordResetSerializer,
    PortalTokenObtainPairSerializer,
    RegisterSerializer,
    SignInSerializer,
    TokenSerializer,
    UserSerializer,
)
from ..services import AccountService
from ..throttling import LoginRateThrottle

logger = logging.getLogger(__name__)


def _set_auth_cookies(response: Response, refresh=None, access=None) -> Response:
    """
    Store the JWT pair in HTTP-only cookies.

    ``secure`` and ``samesite`` come from JWT_COOKIE_SECURE and
    JWT_COOKIE_SAMESITE so development works over plain HTTP.
    """
    jwt_settings = settings.SIMPLE_JWT
    options = {
        "httponly": True,
        "secure": settings.JWT_COOKIE_SECURE,
        "samesite": settings.JWT_COOKIE_SAMESITE,
        "path": "/",
    }
    if refresh:
        response.set_cookie(
            REFRESH_COOKIE,
            str(refresh),
            max_age=int(jwt_settings["REFRESH_TOKEN_LIFETIME"].total_seconds()),
            **options,
        )
    if access:
        response.set_cookie(
            ACCESS_COOKIE,
            str(access),
            max_age=int(jwt_settings["ACCESS_TOKEN_LIFETIME"].total_seconds()),
            **options,
        )
    return response


class RegisterView(APIView):
    """
    Self-service registration.

    Creates an unverified account and mails the verification link. The
    account cannot sign in until the address is verified.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        user = AccountService().register(data["name"], data["email"], data["password"])
        return Response(
            {
                "detail": _("Registration successful. Please check your email to verify your account."),
                "user_id": user.id,
            },
            status=status.HTTP_201_CREATED,
        )


class VerifyEmailView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        serializer = TokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AccountService().verify_email(serializer.validated_data["token"])
        return Response({"detail": _("Email verified successfully.")})


class ResendVerificationView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AccountService().resend_verification(serializer.validated_data["email"])
        return Response({"detail": _("Verification email sent.")})


class SignInView(APIView):
    """
    Sign in with e-mail and password.

    - Rejects unverified and deactivated accounts.
    - Records the login in the account activity log.
    - Sets ``refresh_token`` and ``access_token`` as HTTP-only cookies and
      leaves them out of the JSON body.
    """

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [LoginRateThrottle]

    def post(self, request: Request) -> Response:
        serializer = SignInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = AccountService().authenticate(
            serializer.validated_data["email"],
            serializer.validated_data["password"],
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
        refresh = PortalTokenObtainPairSerializer.get_token(user)
        user.refresh_from_db()
        response = Response({"user": UserSerializer(user).data}, status=status.HTTP_200_OK)
        return _set_auth_cookies(response, refresh=refresh, access=refresh.access_token)


class CookieTokenRefreshView(APIView):
    """
    Refresh the JWT pair from the ``refresh_token`` cookie and write the new
    tokens back into cookies instead of the response body.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        refresh_token = request.COOKIES.get(REFRESH_COOKIE)
        if not refresh_token:
            return Response(
                {"error": _("Refresh token not provided"), "code": "token_missing", "details": {}},
                status=status.HTTP_400_BAD_REQUEST,
            )

        serializer = TokenRefreshSerializer(data={"refresh": refresh_token})
        try:
            serializer.is_valid(raise_exception=True)
        except TokenError as e:
            return Response(
                {"error": str(e), "code": "token_invalid", "details": {}},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        response = Response({"detail": _("Token refreshed.")}, status=status.HTTP_200_OK)
        return _set_auth_cookies(response, refresh=data.get("refresh"), access=data.get("access"))


class SignOutView(APIView):
    """
    Blacklist the refresh token, record the logout and clear both cookies.

    Always answers 205, an already invalid refresh token is only logged.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request: Request) -> Response:
        refresh_token = request.COOKIES.get(REFRESH_COOKIE) or request.data.get("refresh")
        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError as e:
                logger.info(f"Refresh token of user {request.user.pk} not blacklisted: {e}")

        AccountService().logout(
            request.user, ip_address=get_client_ip(request), user_agent=get_user_agent(request)
        )
        response = Response({"detail": _("Successfully logged out.")}, status=status.HTTP_205_RESET_CONTENT)
        response.delete_cookie(REFRESH_COOKIE, path="/")
        response.delete_cookie(ACCESS_COOKIE, path="/")
        return response


class ForgotPasswordView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AccountService().request_password_reset(serializer.validated_data["email"])
        return Response({"detail": _("Password reset link sent.")})


class ResetPasswordView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        serializer = PasswordResetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AccountService().reset_password(
            serializer.validated_data["token"], serializer.validated_data["password"]
        )
        return Response({"detail": _("Password has been reset.")})


class ChangePasswordView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request: Request) -> Response:
        serializer = ChangePasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AccountService().change_password(
            request.user,
            serializer.validated_data["current_password"],
            serializer.validated_data["new_password"],
        )
        return Response({"detail": _("Password successfully changed.")})


class CurrentUserView(APIView):
    """
    GET returns the signed-in user. PATCH updates the name and the
    notification preferences.
    """

    permission_classes = [IsAuthenticated]
    profile_fields = ("notify_by_email", "notify_in_browser")
    user_fields = ("first_name", "last_name")

    def get(self, request: Request) -> Response:
        data = UserSerializer(request.user).data
        profile = request.user.profile
        data["capabilities"] = list(profile.role.permissions)
        data.update({field: getattr(profile, field) for field in self.profile_fields})
        return Response(data)

    def patch(self, request: Request) -> Response:
        user = request.user
        profile = user.profile
        changed_user = [f for f in self.user_fields if f in request.data]
        changed_profile = [f for f in self.profile_fields if f in request.data]
        for field in changed_user:
            setattr(user, field, str(request.data[field])[:150])
        for field in changed_profile:
            setattr(profile, field, serializers.BooleanField().to_internal_value(request.data[field]))
        if changed_user:
            user.save(update_fields=changed_user)
        if changed_profile:
            profile.save(update_fields=changed_profile)
        return self.get(request)
