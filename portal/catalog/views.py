"""
Exam Portal Catalog Views

Views:
- ExamListCreateView: Exams visible to the user, exam creation
- ExamDetailView: Read, update and delete one exam
- ExamPublishView / ExamUnpublishView / ExamDuplicateView
- ExamPreviewView: Candidate view of an exam without answers
- ExamStatisticsView: Attempt and question statistics
- ExamAuditLogView: Audit trail of an exam
- QuestionListCreateView / QuestionDetailView: Question authoring

Exam authors need ``manage_exams`` or their own ``create_exam`` /
``edit_exam`` capabilities. Instructors can only change exams they created;
``manage_exams`` covers every exam.

Author: Exam Portal Development Team
Version: 1.0.0
"""

from django.db.models import Q
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..common.request import get_client_ip
from ..exceptions import PermissionDenied
from ..permissions import HasCapability, user_can
from .models import Exam
from .serializers import (
    CandidateQuestionSerializer,
    ExamAuditEntrySerializer,
    ExamDetailSerializer,
    ExamSerializer,
    ExamWriteSerializer,
    QuestionSerializer,
    QuestionWriteSerializer,
)
from .services import ExamCatalog

AUTHOR_CAPABILITIES = ("manage_exams", "create_exam", "edit_exam")


def _require_author(user, exam: Exam) -> None:
    """Instructors may only change their own exams."""
    if user_can(user, "manage_exams"):
        return
    if exam.creator_id != user.pk:
        raise PermissionDenied("You can only manage exams you created")


class ExamListCreateView(APIView):
    """
    GET lists exams. Authors see every exam they may manage, everyone else
    sees published exams only. POST creates a draft exam.
    """

    def get_permissions(self):
        if self.request.method == "POST":
            return [HasCapability("manage_exams", "create_exam")()]
        return super().get_permissions()

    def get(self, request: Request) -> Response:
        user = request.user
        exams = Exam.objects.select_related("creator").prefetch_related("courses")
        if user_can(user, "manage_exams"):
            pass
        elif user_can(user, "create_exam", "edit_exam"):
            exams = exams.filter(Q(creator=user) | Q(is_published=True))
        else:
            exams = exams.filter(is_published=True)

        published = request.query_params.get("published")
        if published in ("true", "false"):
            exams = exams.filter(is_published=published == "true")
        search = request.query_params.get("search")
        if search:
            exams = exams.filter(title__icontains=search)
        return Response(ExamSerializer(exams.order_by("-created_at"), many=True).data)

    def post(self, request: Request) -> Response:
        serializer = ExamWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        exam = ExamCatalog().create_exam(
            serializer.validated_data, request.user, ip_address=get_client_ip(request)
        )
        return Response(ExamDetailSerializer(exam).data, status=status.HTTP_201_CREATED)


class ExamDetailView(APIView):
    def get_permissions(self):
        if self.request.method in ("PATCH", "PUT", "DELETE"):
            return [HasCapability("manage_exams", "edit_exam")()]
        return super().get_permissions()

    def get(self, request: Request, exam_id: int) -> Response:
        exam = ExamCatalog().get_exam(exam_id)
        if user_can(request.user, *AUTHOR_CAPABILITIES):
            return Response(ExamDetailSerializer(exam).data)
        if not exam.is_published:
            raise PermissionDenied("Exam is not published")
        return Response(ExamSerializer(exam).data)

    def patch(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        serializer = ExamWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        exam = catalog.update_exam(
            exam_id, serializer.validated_data, request.user, ip_address=get_client_ip(request)
        )
        return Response(ExamDetailSerializer(exam).data)

    put = patch

    def delete(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        catalog.delete_exam(exam_id, request.user, ip_address=get_client_ip(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class ExamPublishView(APIView):
    permission_classes = [HasCapability("manage_exams", "edit_exam")]

    def post(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        exam = catalog.publish(exam_id, request.user, ip_address=get_client_ip(request))
        return Response(ExamSerializer(exam).data)


class ExamUnpublishView(APIView):
    permission_classes = [HasCapability("manage_exams", "edit_exam")]

    def post(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        exam = catalog.unpublish(
            exam_id, request.user, reason=request.data.get("reason", ""), ip_address=get_client_ip(request)
        )
        return Response(ExamSerializer(exam).data)


class ExamDuplicateView(APIView):
    permission_classes = [HasCapability("manage_exams", "create_exam")]

    def post(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        clone = catalog.duplicate(exam_id, request.user, ip_address=get_client_ip(request))
        return Response(ExamDetailSerializer(clone).data, status=status.HTTP_201_CREATED)


class ExamPreviewView(APIView):
    permission_classes = [HasCapability(*AUTHOR_CAPABILITIES)]

    def get(self, request: Request, exam_id: int) -> Response:
        exam, questions = ExamCatalog().preview(exam_id, request.user, ip_address=get_client_ip(request))
        data = ExamSerializer(exam).data
        data["questions"] = CandidateQuestionSerializer(questions, many=True).data
        return Response(data)


class ExamStatisticsView(APIView):
    permission_classes = [HasCapability("manage_exams", "view_results", "view_reports")]

    def get(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        exam = catalog.get_exam(exam_id)
        return Response(
            {
                "exam_id": exam.pk,
                "attempts": catalog.exam_statistics(exam),
                "questions": catalog.question_statistics(exam),
            }
        )


class ExamAuditLogView(APIView):
    permission_classes = [HasCapability("manage_exams", "view_reports")]

    def get(self, request: Request, exam_id: int) -> Response:
        exam = ExamCatalog().get_exam(exam_id)
        return Response(ExamAuditEntrySerializer(exam.audit_entries.order_by("-created_at"), many=True).data)


class QuestionListCreateView(APIView):
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    permission_classes = [HasCapability("manage_exams", "manage_questions", "create_question", "edit_question")]

    def get(self, request: Request, exam_id: int) -> Response:
        exam = ExamCatalog().get_exam(exam_id)
        _require_author(request.user, exam)
        return Response(QuestionSerializer(exam.questions.order_by("order"), many=True).data)

    def post(self, request: Request, exam_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        serializer = QuestionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        image = data.pop("image", None)
        question = catalog.add_question(
            exam_id, data, request.user, image=image, ip_address=get_client_ip(request)
        )
        return Response(QuestionSerializer(question).data, status=status.HTTP_201_CREATED)


class QuestionDetailView(APIView):
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    permission_classes = [HasCapability("manage_exams", "manage_questions", "edit_question")]

    def patch(self, request: Request, exam_id: int, question_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        serializer = QuestionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        image = data.pop("image", None)
        question = catalog.update_question(
            exam_id, question_id, data, request.user, image=image, ip_address=get_client_ip(request)
        )
        return Response(QuestionSerializer(question).data)

    put = patch

    def delete(self, request: Request, exam_id: int, question_id: int) -> Response:
        catalog = ExamCatalog()
        _require_author(request.user, catalog.get_exam(exam_id))
        catalog.delete_question(exam_id, question_id, request.user, ip_address=get_client_ip(request))
        return Response(status=status.HTTP_204_NO_CONTENT)
