"""
Role management endpoints, restricted to the ``manage_users`` capability.
"""

from django.db.models import Count
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ...permissions import HasCapability
from ..models import Role
from ..registry import get_role_registry
from ..serializers import RoleSerializer


class RoleListView(APIView):
    permission_classes = [HasCapability("manage_users")]

    def get(self, request: Request) -> Response:
        roles = Role.objects.annotate(user_count=Count("profiles")).order_by("name")
        return Response(RoleSerializer(roles, many=True).data)

    def post(self, request: Request) -> Response:
        serializer = RoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = get_role_registry().create_role(**serializer.validated_data)
        return Response(RoleSerializer(role).data, status=status.HTTP_201_CREATED)


class RoleDetailView(APIView):
    permission_classes = [HasCapability("manage_users")]

    def get(self, request: Request, name: str) -> Response:
        return Response(RoleSerializer(get_role_registry().resolve_role(name)).data)

    def patch(self, request: Request, name: str) -> Response:
        registry = get_role_registry()
        serializer = RoleSerializer(registry.resolve_role(name), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = {
            key: value
            for key, value in serializer.validated_data.items()
            if key in ("display_name", "description", "permissions")
        }
        role = registry.update_role(name, **changes)
        return Response(RoleSerializer(role).data)

    def delete(self, request: Request, name: str) -> Response:
        get_role_registry().delete_role(name)
        return Response(status=status.HTTP_204_NO_CONTENT)
