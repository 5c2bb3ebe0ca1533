"""
Exam Portal Django Admin Configuration

This module provides the Django admin interface (themed by jazzmin) for all
exam portal models.

The admin interface is organized into logical sections:
- User Management: Users with profile and role, roles, account activity
- Examination System: Exams, questions, attempts, answers and audit trail
- Courses and Payments
- Notifications

Exam counters are maintained by the catalog service. Questions are
therefore read-only here, and exams offer an action that recomputes their
cached totals.

Author: Exam Portal Development Team
Version: 1.0.0
"""

from typing import Optional

from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _

from .catalog.services import ExamCatalog
from .models import (
    AccountActivity,
    Answer,
    Course,
    CourseEnrollment,
    Exam,
    ExamAttempt,
    ExamAuditEntry,
    Notification,
    Payment,
    Profile,
    Question,
    Role,
)

# --- User Management Administration ---


class ProfileInline(admin.StackedInline):
    """Inline admin for the user's profile, role and verification state."""

    model = Profile
    can_delete = False
    verbose_name_plural = "Profile Information"
    fk_name = "user"
    fields = ("role", "email_verified", "login_count", "notify_by_email", "notify_in_browser")
    readonly_fields = ("login_count",)

    def get_extra(self, request: HttpRequest, obj: Optional[User] = None, **kwargs) -> int:
        """Return 0 extra forms since the profile is created automatically."""
        return 0


class UserAdmin(BaseUserAdmin):
    """User administration with role and verification state."""

    inlines = (ProfileInline,)
    list_display = (
        "username",
        "email",
        "first_name",
        "last_name",
        "get_role",
        "get_email_verified",
        "is_active",
    )
    list_select_related = ("profile", "profile__role")
    list_filter = ("is_superuser", "is_active", "profile__role", "profile__email_verified", "date_joined")
    search_fields = ("username", "first_name", "last_name", "email")
    ordering = ("username",)

    @admin.display(description=_("Role"))
    def get_role(self, instance: User) -> Optional[str]:
        try:
            return instance.profile.role.display_name
        except Profile.DoesNotExist:
            return None

    @admin.display(boolean=True, description=_("Email Verified"))
    def get_email_verified(self, instance: User) -> Optional[bool]:
        try:
            return instance.profile.email_verified
        except Profile.DoesNotExist:
            return None

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return super().get_queryset(request).select_related("profile__role")


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ("name", "display_name", "is_system", "updated_at")
    list_filter = ("is_system",)
    search_fields = ("name", "display_name")
    readonly_fields = ("is_system", "created_at", "updated_at")

    def has_delete_permission(self, request: HttpRequest, obj: Optional[Role] = None) -> bool:
        if obj is not None and obj.is_system:
            return False
        return super().has_delete_permission(request, obj)


@admin.register(AccountActivity)
class AccountActivityAdmin(admin.ModelAdmin):
    list_display = ("user", "kind", "status", "ip_address", "created_at")
    list_filter = ("kind", "status", "created_at")
    search_fields = ("user__email", "ip_address")
    readonly_fields = ("user", "kind", "status", "ip_address", "user_agent", "created_at")

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False


# --- Examination System Administration ---


class QuestionInline(admin.TabularInline):
    """Read-only list of an exam's questions."""

    model = Question
    extra = 0
    can_delete = False
    fields = ("order", "text", "type", "marks", "negative_marks", "difficulty")
    readonly_fields = fields
    ordering = ("order",)

    def has_add_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    """
    Administration interface for exams.

    Question count and total marks are read-only, the "Recalculate totals"
    action repairs them from the questions.
    """

    list_display = (
        "title",
        "creator",
        "is_published",
        "question_count",
        "total_marks",
        "passing_marks",
        "attempts",
        "is_active",
    )
    list_filter = ("is_published", "is_active", "shuffle_questions", "created_at")
    search_fields = ("title", "description")
    filter_horizontal = ("courses",)
    inlines = [QuestionInline]
    actions = ["recalculate_totals"]
    readonly_fields = (
        "question_count",
        "total_marks",
        "published_at",
        "unpublished_at",
        "deleted_at",
        "deleted_by",
        "created_at",
        "updated_at",
    )

    fieldsets = (
        (_("Basic Information"), {"fields": ("title", "description", "instructions", "creator", "courses")}),
        (
            _("Scoring"),
            {"fields": ("question_count", "total_marks", "passing_marks", "attempts", "show_result")},
        ),
        (
            _("Availability"),
            {"fields": ("duration", "start_time", "end_time", "shuffle_questions", "price")},
        ),
        (
            _("State"),
            {
                "fields": ("is_published", "published_at", "unpublished_at", "is_active", "deleted_at", "deleted_by"),
                "classes": ("collapse",),
            },
        ),
    )

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return Exam.all_objects.select_related("creator")

    @admin.action(description=_("Recalculate totals"))
    def recalculate_totals(self, request: HttpRequest, queryset: QuerySet) -> None:
        catalog = ExamCatalog()
        fixed = sum(1 for exam in queryset if catalog.recalculate_totals(exam))
        self.message_user(request, _("%(count)d exam(s) corrected.") % {"count": fixed}, messages.SUCCESS)


@admin.register(ExamAuditEntry)
class ExamAuditEntryAdmin(admin.ModelAdmin):
    list_display = ("exam", "action", "actor", "ip_address", "created_at")
    list_filter = ("action", "created_at")
    search_fields = ("exam__title", "actor__email")
    readonly_fields = ("exam", "action", "actor", "details", "ip_address", "created_at")

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False


class AnswerInline(admin.TabularInline):
    model = Answer
    extra = 0
    fields = ("question", "value", "is_correct", "marks", "review_status", "feedback")
    readonly_fields = ("question", "value", "is_correct", "marks", "review_status")


@admin.register(ExamAttempt)
class ExamAttemptAdmin(admin.ModelAdmin):
    list_display = ("exam", "user", "status", "score", "auto_submitted", "start_time", "submitted_at", "is_active")
    list_filter = ("status", "auto_submitted", "is_active", "exam")
    search_fields = ("user__email", "exam__title")
    autocomplete_fields = ("user",)
    readonly_fields = (
        "exam",
        "status",
        "score",
        "start_time",
        "end_time",
        "submitted_at",
        "evaluated_at",
        "time_spent",
        "auto_submitted",
        "ip_address",
        "browser_info",
    )
    inlines = [AnswerInline]

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return ExamAttempt.all_objects.select_related("exam", "user")


# --- Courses and Payments ---


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("title", "level", "price", "is_published", "enrollment_count", "creator")
    list_filter = ("level", "is_published")
    search_fields = ("title", "description")
    readonly_fields = ("enrollment_count", "published_at", "created_at", "updated_at")


@admin.register(CourseEnrollment)
class CourseEnrollmentAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "status", "progress", "enrolled_at", "completed_at")
    list_filter = ("status", "course")
    search_fields = ("user__email", "course__title")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "amount", "currency", "status", "payment_for", "payment_method", "created_at")
    list_filter = ("status", "payment_for", "payment_method", "currency")
    search_fields = ("user__email", "transaction_id")
    readonly_fields = ("gateway_response", "completed_at", "refund_processed_at", "created_at", "updated_at")


# --- Notifications ---


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("user", "type", "title", "read", "created_at", "expires_at")
    list_filter = ("type", "read")
    search_fields = ("user__email", "title")
