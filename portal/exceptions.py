"""
Exam Portal Exceptions

This module provides the exception hierarchy of the exam portal together with
the Django REST Framework exception handler that renders it.

Every error carries a human-readable message, an HTTP status code, a short
machine-readable error code and optional details. The families are:

- ValidationError (400): malformed input or violated field constraints
- AuthenticationError (401) / PermissionDenied (403)
- NotFound (404): missing or soft-deleted records
- StateConflict (409): operation not allowed in the current state
- IntegrityViolation (500): an invariant of the data was found broken
- DependencyFailure (503): e-mail, storage or another collaborator failed

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from typing import Optional, Dict, Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."


class PortalError(Exception):
    """
    Base exception class for all exam portal errors.

    Attributes:
        message (str): Human-readable error message
        status_code (int): HTTP status code used when rendered by the API
        error_code (str): Short machine-readable error identifier
        details (Dict[str, Any]): Additional error details
    """

    default_status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_error_code: str = "portal_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code or self.default_status_code
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "details": self.details,
            "exception_type": self.__class__.__name__,
        }


# --- Families ---


class ValidationError(PortalError):
    default_status_code = status.HTTP_400_BAD_REQUEST
    default_error_code = "validation_error"


class AuthenticationError(PortalError):
    default_status_code = status.HTTP_401_UNAUTHORIZED
    default_error_code = "authentication_failed"


class PermissionDenied(PortalError):
    default_status_code = status.HTTP_403_FORBIDDEN
    default_error_code = "permission_denied"


class NotFound(PortalError):
    default_status_code = status.HTTP_404_NOT_FOUND
    default_error_code = "not_found"


class StateConflict(PortalError):
    default_status_code = status.HTTP_409_CONFLICT
    default_error_code = "state_conflict"


class IntegrityViolation(PortalError):
    default_status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_error_code = "integrity_violation"


class DependencyFailure(PortalError):
    default_status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_error_code = "dependency_failure"


# --- Roles ---


class RoleNotFound(NotFound):
    default_error_code = "role_not_found"

    def __init__(self, role_name: str) -> None:
        super().__init__(
            f"Role '{role_name}' does not exist", details={"role": role_name}
        )


# --- Catalog ---


class ExamPublished(StateConflict):
    default_error_code = "exam_published"

    def __init__(self, message: str = "Questions of a published exam cannot be changed") -> None:
        super().__init__(message)


class QuestionHasAnswers(StateConflict):
    default_error_code = "question_has_answers"

    def __init__(self, message: str = "Question already has submitted answers") -> None:
        super().__init__(message)


class ExamNotReadyForPublishing(ValidationError):
    default_error_code = "exam_not_ready"


# --- Attempts ---


class ExamNotAvailable(StateConflict):
    default_error_code = "exam_not_available"


class AttemptLimitExceeded(StateConflict):
    default_error_code = "attempt_limit_exceeded"

    def __init__(self, allowed: int) -> None:
        super().__init__(
            "Maximum number of attempts reached for this exam",
            details={"allowed_attempts": allowed},
        )


class AttemptInProgress(StateConflict):
    default_error_code = "attempt_in_progress"

    def __init__(self, attempt_id: int) -> None:
        super().__init__(
            "An attempt for this exam is already in progress",
            details={"attempt_id": attempt_id},
        )


class AttemptTimeExpired(StateConflict):
    default_error_code = "attempt_time_expired"

    def __init__(self, message: str = "The time for this attempt has expired") -> None:
        super().__init__(message)


class InvalidStateTransition(StateConflict):
    default_error_code = "invalid_state_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move from '{current}' to '{target}'",
            details={"current": current, "target": target},
        )


class InvalidAnswerFormat(ValidationError):
    default_error_code = "invalid_answer_format"


class MarksExceedQuestion(ValidationError):
    default_error_code = "marks_exceed_question"

    def __init__(self, marks, maximum) -> None:
        super().__init__(
            "Awarded marks exceed the marks of the question",
            details={"marks": str(marks), "maximum": str(maximum)},
        )


# --- Payments ---


class RefundExceedsAmount(ValidationError):
    # Reported as a 400 request error, not as an IntegrityViolation
    default_error_code = "refund_exceeds_amount"

    def __init__(self, requested, paid) -> None:
        super().__init__(
            "Refund amount cannot exceed the payment amount",
            details={"requested": str(requested), "paid": str(paid)},
        )


class RefundReasonRequired(ValidationError):
    default_error_code = "refund_reason_required"

    def __init__(self) -> None:
        super().__init__("A refund reason is required")


# --- DRF integration ---


def _portal_error_response(exc: PortalError) -> Response:
    body = {"error": exc.message, "code": exc.error_code}
    if exc.details:
        body["details"] = exc.details
    return Response(body, status=exc.status_code)


def portal_exception_handler(exc, context):
    """
    REST framework exception handler for the portal.

    Portal errors are rendered with their message and details. Integrity
    violations and unexpected exceptions are logged with their traceback and
    answered with a generic message.
    """
    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else "unknown view"

    if isinstance(exc, IntegrityViolation):
        logger.error(f"Integrity violation in {view_name}: {exc.message}", exc_info=exc)
        return Response(
            {"error": GENERIC_ERROR_MESSAGE, "code": exc.error_code},
            status=exc.status_code,
        )

    if isinstance(exc, PortalError):
        if isinstance(exc, DependencyFailure):
            logger.warning(f"Dependency failure in {view_name}: {exc.message}")
        return _portal_error_response(exc)

    if isinstance(exc, DjangoValidationError):
        details = exc.message_dict if hasattr(exc, "error_dict") else {"non_field_errors": exc.messages}
        return _portal_error_response(
            ValidationError("Invalid input", details=details)
        )

    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, Http404):
        return _portal_error_response(NotFound(str(exc) or "Not found"))

    logger.error(f"Unhandled exception in {view_name}: {exc}", exc_info=exc)
    return Response(
        {"error": GENERIC_ERROR_MESSAGE, "code": PortalError.default_error_code},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
