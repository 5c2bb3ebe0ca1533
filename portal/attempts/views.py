"""
Exam Portal Attempt Views

Views:
- StartAttemptView: Start an attempt at a published exam
- MyAttemptsView: The signed-in user's attempts
- AttemptDetailView / AttemptResultView
- SubmitAnswerView / SubmitAttemptView: Candidate actions
- EvaluateAttemptView / DropAttemptView: Grader and admin actions
- PendingReviewsView / ReviewAnswerView: Manual grading

Author: Exam Portal Development Team
Version: 1.0.0
"""

from rest_framework import generics, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..common.request import get_client_ip, get_user_agent
from ..permissions import HasCapability, user_can
from .models import ExamAttempt
from .serializers import (
    AnswerReviewSerializer,
    AnswerSerializer,
    AnswerSubmitSerializer,
    ExamAttemptDetailSerializer,
    ExamAttemptSerializer,
    PendingReviewSerializer,
)
from .services import AttemptEngine

GRADER_CAPABILITIES = ("manage_exams", "view_results")


class StartAttemptView(APIView):
    permission_classes = [HasCapability("take_exam")]

    def post(self, request: Request, exam_id: int) -> Response:
        attempt = AttemptEngine().start_attempt(
            request.user,
            exam_id,
            ip_address=get_client_ip(request),
            browser_info=get_user_agent(request),
        )
        return Response(ExamAttemptDetailSerializer(attempt).data, status=status.HTTP_201_CREATED)


class MyAttemptsView(generics.ListAPIView):
    serializer_class = ExamAttemptSerializer

    def get_queryset(self):
        queryset = ExamAttempt.objects.filter(user=self.request.user).select_related("exam")
        exam_id = self.request.query_params.get("exam")
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return queryset


class AttemptDetailView(APIView):
    def get(self, request: Request, attempt_id: int) -> Response:
        owner = None if user_can(request.user, *GRADER_CAPABILITIES) else request.user
        attempt = AttemptEngine().get_attempt(attempt_id, user=owner)
        return Response(ExamAttemptDetailSerializer(attempt).data)


class AttemptResultView(APIView):
    def get(self, request: Request, attempt_id: int) -> Response:
        engine = AttemptEngine()
        if user_can(request.user, *GRADER_CAPABILITIES):
            attempt = engine.get_attempt(attempt_id)
            return Response(engine.attempt_result(attempt, include_answers=True))
        attempt = engine.get_attempt(attempt_id, user=request.user)
        return Response(engine.attempt_result(attempt))


class SubmitAnswerView(APIView):
    def post(self, request: Request, attempt_id: int) -> Response:
        serializer = AnswerSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        answer = AttemptEngine().submit_answer(
            attempt_id,
            serializer.validated_data["question_id"],
            serializer.validated_data["value"],
            user=request.user,
        )
        # Correctness stays hidden until the attempt is evaluated
        return Response(
            {"id": answer.pk, "question": answer.question_id, "value": answer.value},
            status=status.HTTP_200_OK,
        )


class SubmitAttemptView(APIView):
    def post(self, request: Request, attempt_id: int) -> Response:
        attempt = AttemptEngine().submit(attempt_id, user=request.user)
        return Response(ExamAttemptSerializer(attempt).data)


class EvaluateAttemptView(APIView):
    permission_classes = [HasCapability(*GRADER_CAPABILITIES)]

    def post(self, request: Request, attempt_id: int) -> Response:
        engine = AttemptEngine()
        attempt = engine.evaluate(attempt_id, actor=request.user)
        return Response(engine.attempt_result(attempt, include_answers=True))


class DropAttemptView(APIView):
    permission_classes = [HasCapability("manage_exams")]

    def post(self, request: Request, attempt_id: int) -> Response:
        AttemptEngine().drop_attempt(attempt_id, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PendingReviewsView(generics.ListAPIView):
    serializer_class = PendingReviewSerializer
    permission_classes = [HasCapability(*GRADER_CAPABILITIES)]

    def get_queryset(self):
        queryset = AttemptEngine().pending_reviews()
        exam_id = self.request.query_params.get("exam")
        if exam_id:
            queryset = queryset.filter(attempt__exam_id=exam_id)
        return queryset


class ReviewAnswerView(APIView):
    permission_classes = [HasCapability(*GRADER_CAPABILITIES)]

    def post(self, request: Request, answer_id: int) -> Response:
        serializer = AnswerReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        answer = AttemptEngine().review_answer(
            answer_id,
            serializer.validated_data["marks"],
            serializer.validated_data["feedback"],
            request.user,
        )
        return Response(AnswerSerializer(answer).data)
