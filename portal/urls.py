"""
Exam Portal URL Configuration

This module defines the URL routing of the exam portal API. Each functional
area has its own URL namespace.

URL Structure:
- /api/portal/auth/: Registration, verification, sign-in and passwords
- /api/portal/roles/ and /api/portal/admin/users/: Role and user management
- /api/portal/exams/: Exam and question authoring, starting attempts
- /api/portal/attempts/ and /api/portal/answers/: Taking and grading exams
- /api/portal/notifications/: In-app notifications
- /api/portal/payments/: Payment ledger
- /api/portal/courses/: Courses and enrollments
- /api/portal/dashboard/: Student and admin dashboards

Author: Exam Portal Development Team
Version: 1.0.0
"""

from typing import List

from django.urls import URLPattern, include, path
from rest_framework.routers import DefaultRouter

from .accounts import views as account_views
from .attempts import views as attempt_views
from .catalog import views as catalog_views
from .courses import views as course_views
from .dashboard import views as dashboard_views
from .notifications import views as notification_views
from .payments import views as payment_views

app_name = "portal"


def _create_users_router() -> DefaultRouter:
    """
    Create and configure the router for user management endpoints.

    Returns:
        Configured DefaultRouter for user CRUD operations
    """
    router = DefaultRouter()
    router.register(r"admin/users", account_views.UserCrudViewSet, basename="admin-users")
    return router


users_router = _create_users_router()

# --- Authentication ---

auth_urlpatterns: List[URLPattern] = [
    path("register/", account_views.RegisterView.as_view(), name="register"),
    path("verify-email/", account_views.VerifyEmailView.as_view(), name="verify-email"),
    path("resend-verification/", account_views.ResendVerificationView.as_view(), name="resend-verification"),
    path("signin/", account_views.SignInView.as_view(), name="signin"),
    path("refresh/", account_views.CookieTokenRefreshView.as_view(), name="refresh"),
    path("signout/", account_views.SignOutView.as_view(), name="signout"),
    path("forgot-password/", account_views.ForgotPasswordView.as_view(), name="forgot-password"),
    path("reset-password/", account_views.ResetPasswordView.as_view(), name="reset-password"),
    path("change-password/", account_views.ChangePasswordView.as_view(), name="change-password"),
    path("me/", account_views.CurrentUserView.as_view(), name="me"),
]

# --- Roles and Users ---

roles_urlpatterns: List[URLPattern] = [
    path("", account_views.RoleListView.as_view(), name="role-list"),
    path("<str:name>/", account_views.RoleDetailView.as_view(), name="role-detail"),
]

# --- Exams and Questions ---

exams_urlpatterns: List[URLPattern] = [
    path("", catalog_views.ExamListCreateView.as_view(), name="exam-list"),
    path("<int:exam_id>/", catalog_views.ExamDetailView.as_view(), name="exam-detail"),
    path("<int:exam_id>/publish/", catalog_views.ExamPublishView.as_view(), name="exam-publish"),
    path("<int:exam_id>/unpublish/", catalog_views.ExamUnpublishView.as_view(), name="exam-unpublish"),
    path("<int:exam_id>/duplicate/", catalog_views.ExamDuplicateView.as_view(), name="exam-duplicate"),
    path("<int:exam_id>/preview/", catalog_views.ExamPreviewView.as_view(), name="exam-preview"),
    path("<int:exam_id>/statistics/", catalog_views.ExamStatisticsView.as_view(), name="exam-statistics"),
    path("<int:exam_id>/audit/", catalog_views.ExamAuditLogView.as_view(), name="exam-audit"),
    path("<int:exam_id>/questions/", catalog_views.QuestionListCreateView.as_view(), name="question-list"),
    path(
        "<int:exam_id>/questions/<int:question_id>/",
        catalog_views.QuestionDetailView.as_view(),
        name="question-detail",
    ),
    path("<int:exam_id>/start/", attempt_views.StartAttemptView.as_view(), name="exam-start"),
]

# --- Attempts and Answers ---

attempts_urlpatterns: List[URLPattern] = [
    path("", attempt_views.MyAttemptsView.as_view(), name="my-attempts"),
    path("<int:attempt_id>/", attempt_views.AttemptDetailView.as_view(), name="attempt-detail"),
    path("<int:attempt_id>/result/", attempt_views.AttemptResultView.as_view(), name="attempt-result"),
    path("<int:attempt_id>/answers/", attempt_views.SubmitAnswerView.as_view(), name="attempt-answer"),
    path("<int:attempt_id>/submit/", attempt_views.SubmitAttemptView.as_view(), name="attempt-submit"),
    path("<int:attempt_id>/evaluate/", attempt_views.EvaluateAttemptView.as_view(), name="attempt-evaluate"),
    path("<int:attempt_id>/drop/", attempt_views.DropAttemptView.as_view(), name="attempt-drop"),
]

answers_urlpatterns: List[URLPattern] = [
    path("pending/", attempt_views.PendingReviewsView.as_view(), name="pending-reviews"),
    path("<int:answer_id>/review/", attempt_views.ReviewAnswerView.as_view(), name="answer-review"),
]

# --- Notifications ---

notifications_urlpatterns: List[URLPattern] = [
    path("", notification_views.NotificationListView.as_view(), name="notification-list"),
    path("unread-count/", notification_views.UnreadCountView.as_view(), name="unread-count"),
    path("read-all/", notification_views.MarkAllReadView.as_view(), name="read-all"),
    path("broadcast/", notification_views.BroadcastView.as_view(), name="broadcast"),
    path("<int:notification_id>/", notification_views.NotificationDetailView.as_view(), name="notification-detail"),
    path("<int:notification_id>/read/", notification_views.MarkReadView.as_view(), name="notification-read"),
]

# --- Payments ---

payments_urlpatterns: List[URLPattern] = [
    path("", payment_views.MyPaymentsView.as_view(), name="my-payments"),
    path("all/", payment_views.PaymentAdminListView.as_view(), name="payment-list"),
    path("statistics/", payment_views.PaymentStatisticsView.as_view(), name="payment-statistics"),
    path("<int:payment_id>/complete/", payment_views.CompletePaymentView.as_view(), name="payment-complete"),
    path("<int:payment_id>/fail/", payment_views.FailPaymentView.as_view(), name="payment-fail"),
    path("<int:payment_id>/refund/", payment_views.RefundPaymentView.as_view(), name="payment-refund"),
]

# --- Courses ---

courses_urlpatterns: List[URLPattern] = [
    path("", course_views.CourseListCreateView.as_view(), name="course-list"),
    path("enrollments/", course_views.MyEnrollmentsView.as_view(), name="my-enrollments"),
    path(
        "enrollments/<int:enrollment_id>/",
        course_views.EnrollmentProgressView.as_view(),
        name="enrollment-progress",
    ),
    path("<int:course_id>/publish/", course_views.CoursePublishView.as_view(), name="course-publish"),
    path("<int:course_id>/enroll/", course_views.EnrollView.as_view(), name="course-enroll"),
]

# --- Dashboards ---

dashboard_urlpatterns: List[URLPattern] = [
    path("", dashboard_views.StudentDashboardView.as_view(), name="student-dashboard"),
    path("admin/", dashboard_views.AdminDashboardView.as_view(), name="admin-dashboard"),
]

urlpatterns: List[URLPattern] = [
    path("auth/", include((auth_urlpatterns, "auth"))),
    path("roles/", include((roles_urlpatterns, "roles"))),
    path("", include(users_router.urls)),
    path("exams/", include((exams_urlpatterns, "exams"))),
    path("attempts/", include((attempts_urlpatterns, "attempts"))),
    path("answers/", include((answers_urlpatterns, "answers"))),
    path("notifications/", include((notifications_urlpatterns, "notifications"))),
    path("payments/", include((payments_urlpatterns, "payments"))),
    path("courses/", include((courses_urlpatterns, "courses"))),
    path("dashboard/", include((dashboard_urlpatterns, "dashboard"))),
]
