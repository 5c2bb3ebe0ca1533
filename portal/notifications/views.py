from django.contrib.auth import get_user_model
from rest_framework import serializers, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..permissions import HasCapability
from .models import Notification
from .services import NotificationDispatcher


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "type", "title", "message", "link", "read", "created_at", "expires_at"]
        read_only_fields = fields


class BroadcastSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    type = serializers.ChoiceField(choices=Notification.Type.choices, default=Notification.Type.SYSTEM)
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    link = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class NotificationListView(APIView):
    def get(self, request: Request) -> Response:
        try:
            limit = min(max(int(request.query_params.get("limit", 20)), 1), 100)
        except ValueError:
            limit = 20
        notifications = NotificationDispatcher().recent(request.user, limit=limit)
        return Response(NotificationSerializer(notifications, many=True).data)


class UnreadCountView(APIView):
    def get(self, request: Request) -> Response:
        return Response({"count": NotificationDispatcher().unread_count(request.user)})


class MarkReadView(APIView):
    def post(self, request: Request, notification_id: int) -> Response:
        notification = NotificationDispatcher().mark_read(request.user, notification_id)
        return Response(NotificationSerializer(notification).data)


class MarkAllReadView(APIView):
    def post(self, request: Request) -> Response:
        return Response({"updated": NotificationDispatcher().mark_all_read(request.user)})


class NotificationDetailView(APIView):
    def delete(self, request: Request, notification_id: int) -> Response:
        NotificationDispatcher().delete(request.user, notification_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class BroadcastView(APIView):
    """Send a notification to the given users, or to every active user."""

    permission_classes = [HasCapability("manage_users")]

    def post(self, request: Request) -> Response:
        serializer = BroadcastSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        user_ids = data.pop("user_ids", None)
        if user_ids is None:
            user_ids = get_user_model().objects.filter(is_active=True).values_list("pk", flat=True)
        created = NotificationDispatcher().notify_many(user_ids, data)
        return Response({"sent": len(created)}, status=status.HTTP_201_CREATED)
