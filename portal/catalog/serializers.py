import json

from rest_framework import serializers

from .models import UNLIMITED_ATTEMPTS, Exam, ExamAuditEntry, Question


class JSONValueField(serializers.JSONField):
    """JSON field that also accepts a JSON encoded string (multipart uploads)."""

    def to_internal_value(self, data):
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                self.fail("invalid")
        return super().to_internal_value(data)


class QuestionSerializer(serializers.ModelSerializer):
    """Full question including the correct answer, for exam authors."""

    class Meta:
        model = Question
        fields = [
            "id",
            "exam",
            "text",
            "type",
            "options",
            "match_pairs",
            "correct_answer",
            "marks",
            "negative_marks",
            "explanation",
            "difficulty",
            "image_url",
            "order",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CandidateQuestionSerializer(serializers.ModelSerializer):
    """
    Question as shown to a candidate.

    The correct answer and the explanation are never included. For match
    questions only the left sides are in order, the right sides are sorted
    so their position does not reveal the pairing.
    """

    match_pairs = serializers.SerializerMethodField()

    class Meta:
        model = Question
        fields = ["id", "text", "type", "options", "match_pairs", "marks", "negative_marks", "image_url", "order"]

    def get_match_pairs(self, obj):
        if obj.type != Question.Type.MATCH:
            return None
        return {
            "left": [pair["left"] for pair in obj.match_pairs],
            "right": sorted(pair["right"] for pair in obj.match_pairs),
        }


class QuestionWriteSerializer(serializers.Serializer):
    text = serializers.CharField(required=False)
    type = serializers.ChoiceField(choices=Question.Type.choices, required=False)
    options = JSONValueField(required=False)
    match_pairs = JSONValueField(required=False)
    correct_answer = JSONValueField(required=False)
    marks = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0, required=False)
    negative_marks = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0, required=False)
    explanation = serializers.CharField(required=False, allow_blank=True)
    difficulty = serializers.ChoiceField(choices=Question.Difficulty.choices, required=False)
    image = serializers.ImageField(required=False, write_only=True)
    remove_image = serializers.BooleanField(required=False, default=False)


class ExamSerializer(serializers.ModelSerializer):
    creator_name = serializers.SerializerMethodField()
    course_ids = serializers.PrimaryKeyRelatedField(source="courses", many=True, read_only=True)

    class Meta:
        model = Exam
        fields = [
            "id",
            "title",
            "description",
            "instructions",
            "duration",
            "total_marks",
            "question_count",
            "passing_marks",
            "start_time",
            "end_time",
            "is_published",
            "published_at",
            "unpublished_at",
            "shuffle_questions",
            "show_result",
            "price",
            "attempts",
            "creator",
            "creator_name",
            "course_ids",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_creator_name(self, obj):
        return obj.creator.get_full_name() or obj.creator.username


class ExamDetailSerializer(ExamSerializer):
    questions = QuestionSerializer(many=True, read_only=True)

    class Meta(ExamSerializer.Meta):
        fields = ExamSerializer.Meta.fields + ["questions"]
        read_only_fields = fields


class ExamWriteSerializer(serializers.Serializer):
    """
    Input for creating and updating exams.

    Cross-field rules (time window, passing marks) are checked by the
    catalog service, which owns the exam invariants.
    """

    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    instructions = serializers.CharField(required=False, allow_blank=True)
    duration = serializers.IntegerField(min_value=1, required=False)
    passing_marks = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    start_time = serializers.DateTimeField(required=False, allow_null=True)
    end_time = serializers.DateTimeField(required=False, allow_null=True)
    shuffle_questions = serializers.BooleanField(required=False)
    show_result = serializers.BooleanField(required=False)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    attempts = serializers.IntegerField(required=False)
    course_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    questions = serializers.ListField(child=serializers.DictField(), required=False)
    publish = serializers.BooleanField(required=False, default=False)

    def validate_attempts(self, value):
        if value != UNLIMITED_ATTEMPTS and value < 1:
            raise serializers.ValidationError("Attempts must be -1 (unlimited) or at least 1.")
        return value


class ExamAuditEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExamAuditEntry
        fields = ["id", "action", "actor", "details", "ip_address", "created_at"]
