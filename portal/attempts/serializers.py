from rest_framework import serializers

from ..catalog.serializers import CandidateQuestionSerializer
from .models import Answer, ExamAttempt


class ExamAttemptSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source="exam.title", read_only=True)
    remaining_seconds = serializers.IntegerField(read_only=True)
    answered = serializers.SerializerMethodField()

    class Meta:
        model = ExamAttempt
        fields = [
            "id",
            "exam",
            "exam_title",
            "user",
            "status",
            "start_time",
            "end_time",
            "remaining_seconds",
            "submitted_at",
            "evaluated_at",
            "time_spent",
            "auto_submitted",
            "answered",
        ]
        read_only_fields = fields

    def get_answered(self, obj):
        return obj.answers.count()


class ExamAttemptDetailSerializer(ExamAttemptSerializer):
    """Attempt with the exam's questions, for the candidate taking it."""

    questions = serializers.SerializerMethodField()
    answers = serializers.SerializerMethodField()

    class Meta(ExamAttemptSerializer.Meta):
        fields = ExamAttemptSerializer.Meta.fields + ["questions", "answers"]
        read_only_fields = fields

    def get_questions(self, obj):
        questions = obj.exam.questions.order_by("order")
        return CandidateQuestionSerializer(questions, many=True).data

    def get_answers(self, obj):
        return {str(answer.question_id): answer.value for answer in obj.answers.all()}


class AnswerSubmitSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    value = serializers.JSONField()


class AnswerReviewSerializer(serializers.Serializer):
    marks = serializers.DecimalField(max_digits=6, decimal_places=2)
    feedback = serializers.CharField(required=False, allow_blank=True, default="")


class AnswerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Answer
        fields = [
            "id",
            "attempt",
            "question",
            "value",
            "is_correct",
            "marks",
            "feedback",
            "review_status",
            "reviewed_by",
            "reviewed_at",
            "updated_at",
        ]
        read_only_fields = fields


class PendingReviewSerializer(serializers.ModelSerializer):
    question_text = serializers.CharField(source="question.text", read_only=True)
    model_answer = serializers.JSONField(source="question.correct_answer", read_only=True)
    max_marks = serializers.DecimalField(source="question.marks", max_digits=6, decimal_places=2, read_only=True)
    exam_id = serializers.IntegerField(source="attempt.exam_id", read_only=True)
    exam_title = serializers.CharField(source="attempt.exam.title", read_only=True)
    candidate = serializers.CharField(source="attempt.user.email", read_only=True)

    class Meta:
        model = Answer
        fields = [
            "id",
            "attempt",
            "question",
            "question_text",
            "model_answer",
            "max_marks",
            "exam_id",
            "exam_title",
            "candidate",
            "value",
            "created_at",
        ]
        read_only_fields = fields
