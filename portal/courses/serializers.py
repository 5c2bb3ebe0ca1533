from rest_framework import serializers

from .models import Course, CourseEnrollment


class CourseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Course
        fields = [
            "id",
            "title",
            "description",
            "price",
            "level",
            "duration",
            "is_published",
            "published_at",
            "enrollment_count",
            "creator",
            "created_at",
        ]
        read_only_fields = ["id", "is_published", "published_at", "enrollment_count", "creator", "created_at"]


class CourseEnrollmentSerializer(serializers.ModelSerializer):
    course = CourseSerializer(read_only=True)

    class Meta:
        model = CourseEnrollment
        fields = ["id", "course", "status", "progress", "enrolled_at", "completed_at", "payment"]
        read_only_fields = fields


class ProgressSerializer(serializers.Serializer):
    progress = serializers.IntegerField(min_value=0, max_value=100)
