"""
Dashboard aggregates for students and administrators.

Author: Exam Portal Development Team
Version: 1.0.0
"""

from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List

from django.contrib.auth import get_user_model
from django.db.models import Avg, Count, Max, Q
from django.db.models.functions import TruncMonth
from django.utils import timezone

from ..attempts.models import ExamAttempt
from ..attempts.services import AttemptEngine
from ..catalog.models import Exam
from ..courses.models import CourseEnrollment
from ..notifications.models import Notification
from ..payments.models import Payment
from ..payments.services import PaymentLedger


def _round(value):
    return round(Decimal(value), 2) if value is not None else Decimal("0")


def upcoming_exams(now=None, limit: int = 5):
    """Published exams that can be taken now, the ones closing first on top."""
    now = now or timezone.now()
    return (
        Exam.objects.filter(is_published=True)
        .filter(Q(start_time__isnull=True) | Q(start_time__lte=now))
        .filter(Q(end_time__isnull=True) | Q(end_time__gte=now))
        .order_by("end_time", "-published_at")[:limit]
    )


def performance(user) -> Dict[str, Any]:
    evaluated = ExamAttempt.objects.filter(user=user, status=ExamAttempt.Status.EVALUATED)
    aggregate = evaluated.aggregate(average=Avg("score"), highest=Max("score"))
    passed = sum(1 for attempt in evaluated.select_related("exam") if attempt.passed)
    return {
        "total_attempts": ExamAttempt.objects.filter(user=user).count(),
        "evaluated_attempts": evaluated.count(),
        "average_score": _round(aggregate["average"]),
        "highest_score": aggregate["highest"] or Decimal("0"),
        "passed": passed,
    }


def monthly_performance(user, months: int = 6) -> List[Dict[str, Any]]:
    since = timezone.now() - timedelta(days=30 * months)
    rows = (
        ExamAttempt.objects.filter(user=user, status=ExamAttempt.Status.EVALUATED, start_time__gte=since)
        .annotate(month=TruncMonth("start_time"))
        .order_by()
        .values("month")
        .annotate(average=Avg("score"), count=Count("id"))
        .order_by("month")
    )
    return [
        {"month": row["month"].strftime("%Y-%m"), "average_score": _round(row["average"]), "count": row["count"]}
        for row in rows
    ]


def student_dashboard(user) -> Dict[str, Any]:
    recent_attempts = ExamAttempt.objects.filter(user=user).select_related("exam").order_by("-start_time")[:5]
    return {
        "upcoming_exams": [
            {
                "id": exam.pk,
                "title": exam.title,
                "duration": exam.duration,
                "total_marks": exam.total_marks,
                "end_time": exam.end_time,
                "attempts": exam.attempts,
            }
            for exam in upcoming_exams()
        ],
        "recent_attempts": [
            {
                "id": attempt.pk,
                "exam_id": attempt.exam_id,
                "exam_title": attempt.exam.title,
                "status": attempt.status,
                "score": attempt.score if attempt.exam.show_result else None,
                "percentage": attempt.percentage if attempt.exam.show_result else None,
                "passed": attempt.passed if attempt.exam.show_result else None,
                "start_time": attempt.start_time,
            }
            for attempt in recent_attempts
        ],
        "notifications": [
            {"id": n.pk, "type": n.type, "title": n.title, "link": n.link, "created_at": n.created_at}
            for n in Notification.objects.filter(user=user).unread().order_by("-created_at")[:5]
        ],
        "enrollments": [
            {
                "id": enrollment.pk,
                "course_id": enrollment.course_id,
                "course_title": enrollment.course.title,
                "progress": enrollment.progress,
            }
            for enrollment in CourseEnrollment.objects.filter(
                user=user, status=CourseEnrollment.Status.ACTIVE
            ).select_related("course")[:3]
        ],
        "performance": performance(user),
        "monthly_performance": monthly_performance(user),
    }


def admin_dashboard() -> Dict[str, Any]:
    User = get_user_model()
    attempts_by_status = {
        row["status"]: row["count"]
        for row in ExamAttempt.objects.order_by().values("status").annotate(count=Count("id"))
    }
    return {
        "users": {
            "total": User.objects.count(),
            "active": User.objects.filter(is_active=True).count(),
            "unverified": User.objects.filter(profile__email_verified=False).count(),
        },
        "exams": {
            "published": Exam.objects.filter(is_published=True).count(),
            "draft": Exam.objects.filter(is_published=False).count(),
        },
        "attempts": {status: attempts_by_status.get(status, 0) for status in ExamAttempt.Status.values},
        "pending_reviews": AttemptEngine().pending_reviews().count(),
        "payments": {
            "pending": Payment.objects.filter(status=Payment.Status.PENDING).count(),
            "revenue": PaymentLedger().statistics(),
        },
    }
