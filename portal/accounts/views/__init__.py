from .auth_views import (
    ChangePasswordView,
    CookieTokenRefreshView,
    CurrentUserView,
    ForgotPasswordView,
    RegisterView,
    ResendVerificationView,
    ResetPasswordView,
    SignInView,
    SignOutView,
    VerifyEmailView,
)
from .role_views import RoleDetailView, RoleListView
from .user_crud_view import UserCrudViewSet
