"""
Exam Portal User Management CRUD Views

Views:
- UserCrudViewSet: Administrative user management with role assignment

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from typing import Optional

from django.contrib.auth.models import User
from django.db.models import QuerySet
from django.utils.translation import gettext_lazy as _
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from ...exceptions import StateConflict
from ...permissions import HasCapability
from ..registry import get_role_registry
from ..serializers import UserSerializer

logger = logging.getLogger(__name__)


class UserCrudViewSet(viewsets.ModelViewSet):
    """
    Complete user management ViewSet for administrative operations.

    Permissions:
    - Requires the ``manage_users`` capability

    Users are deactivated instead of deleted, since attempts, payments and
    created exams keep referring to them.
    """

    serializer_class = UserSerializer
    permission_classes = [HasCapability("manage_users")]

    def get_queryset(self) -> QuerySet[User]:
        queryset = User.objects.select_related("profile__role").order_by("id")
        role = self.request.query_params.get("role")
        if role:
            queryset = queryset.filter(profile__role__name=role.lower())
        search = self.request.query_params.get("search")
        if search:
            queryset = queryset.filter(email__icontains=search) | queryset.filter(
                first_name__icontains=search
            ) | queryset.filter(last_name__icontains=search)
        return queryset

    def perform_destroy(self, instance: User) -> None:
        """
        Deactivate the user.

        Raises:
            StateConflict: When an administrator tries to deactivate themselves
        """
        if instance.pk == self.request.user.pk:
            raise StateConflict("You cannot deactivate your own account", error_code="self_deactivation")
        instance.is_active = False
        instance.save(update_fields=["is_active"])
        logger.info(f"User {instance.pk} deactivated by {self.request.user.pk}")

    @action(detail=True, methods=["post"], url_path="role")
    def assign_role(self, request: Request, pk: Optional[str] = None) -> Response:
        """
        Assign a role by name.

        Expected Request Data:
            - role: Name of an existing role
        """
        user = self.get_object()
        role = get_role_registry().assign_role(user, request.data.get("role", ""))
        return Response(
            {"detail": _("Role assigned."), "role": role.name},
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"], url_path="activate")
    def activate(self, request: Request, pk: Optional[str] = None) -> Response:
        user = self.get_object()
        user.is_active = True
        user.save(update_fields=["is_active"])
        return Response(self.get_serializer(user).data)
