"""
Role and Permission Registry

The registry knows the fixed set of system role definitions and answers
capability questions for roles and users. A single instance is built by
``PortalConfig.ready()`` and is reached through ``get_role_registry()``.

Capabilities are plain strings (``take_exam``, ``manage_exams`` ...). A role
holding ``*`` is granted every capability; Django superusers are treated the
same way.

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from django.apps import apps
from django.db import transaction

from ..exceptions import RoleNotFound, StateConflict, ValidationError
from .models import Profile, Role

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    display_name: str
    description: str
    permissions: Tuple[str, ...]


SYSTEM_ROLES: Tuple[RoleDefinition, ...] = (
    RoleDefinition(
        name="superadmin",
        display_name="Super Admin",
        description="Full system access",
        permissions=(WILDCARD,),
    ),
    RoleDefinition(
        name="admin",
        display_name="Administrator",
        description="System administrator with limited access",
        permissions=(
            "manage_users",
            "manage_courses",
            "manage_exams",
            "manage_questions",
            "view_reports",
            "manage_payments",
        ),
    ),
    RoleDefinition(
        name="instructor",
        display_name="Instructor",
        description="Can create and manage courses and exams",
        permissions=(
            "create_course",
            "edit_course",
            "create_exam",
            "edit_exam",
            "create_question",
            "edit_question",
            "view_results",
        ),
    ),
    RoleDefinition(
        name="user",
        display_name="Student",
        description="Regular user account",
        permissions=("take_exam", "view_course", "view_profile", "edit_profile"),
    ),
)


class RoleRegistry:
    """
    Registry of roles and their capabilities.

    Args:
        definitions: System role definitions the seed restores
        default_role_name: Role assigned to new accounts
    """

    def __init__(
        self,
        definitions: Iterable[RoleDefinition] = SYSTEM_ROLES,
        default_role_name: str = "user",
    ) -> None:
        self.definitions: Dict[str, RoleDefinition] = {d.name: d for d in definitions}
        self.default_role_name = default_role_name.lower()
        if self.default_role_name not in self.definitions:
            raise ValueError(f"Default role '{default_role_name}' is not a system role")

    # --- Capabilities ---

    @property
    def known_capabilities(self) -> set:
        capabilities = {WILDCARD}
        for definition in self.definitions.values():
            capabilities.update(definition.permissions)
        return capabilities

    @staticmethod
    def has_permission(role: Optional[Role], capability: str) -> bool:
        """Return True if the role holds the capability or the wildcard."""
        if role is None:
            return False
        permissions = role.permissions or []
        return WILDCARD in permissions or capability in permissions

    def user_has_permission(self, user, capability: str) -> bool:
        if user is None or not user.is_authenticated or not user.is_active:
            return False
        if user.is_superuser:
            return True
        try:
            role = user.profile.role
        except Profile.DoesNotExist:
            return False
        return self.has_permission(role, capability)

    def user_has_any_permission(self, user, capabilities: Iterable[str]) -> bool:
        return any(self.user_has_permission(user, capability) for capability in capabilities)

    # --- Lookup ---

    def resolve_role(self, name: str) -> Role:
        normalized = (name or "").strip().lower()
        try:
            return Role.objects.get(name=normalized)
        except Role.DoesNotExist:
            raise RoleNotFound(normalized)

    def default_role(self) -> Role:
        """
        Return the default role, creating it from its definition if missing.

        Users can be created before the seed ran (createsuperuser, tests),
        and every user must hold exactly one role.
        """
        definition = self.definitions[self.default_role_name]
        role, created = Role.objects.get_or_create(
            name=definition.name,
            defaults={
                "display_name": definition.display_name,
                "description": definition.description,
                "permissions": list(definition.permissions),
                "is_system": True,
            },
        )
        if created:
            logger.info(f"Default role '{role.name}' created on demand")
        return role

    # --- Seeding ---

    def seed(self) -> Dict[str, int]:
        """
        Restore the system roles to their canonical definitions.

        Runs in one transaction: system roles are created or reset, users of
        any other role are moved to the default role and the other roles are
        deleted.

        Returns:
            Counters for created, updated, reassigned users and deleted roles
        """
        created_count = 0
        updated_count = 0
        with transaction.atomic():
            for definition in self.definitions.values():
                _, created = Role.objects.update_or_create(
                    name=definition.name,
                    defaults={
                        "display_name": definition.display_name,
                        "description": definition.description,
                        "permissions": list(definition.permissions),
                        "is_system": True,
                    },
                )
                if created:
                    created_count += 1
                else:
                    updated_count += 1

            default_role = Role.objects.get(name=self.default_role_name)
            stale_roles = Role.objects.exclude(name__in=list(self.definitions))
            reassigned = Profile.objects.filter(role__in=stale_roles).update(role=default_role)
            deleted = stale_roles.count()
            stale_roles.delete()

        logger.info(
            f"Roles seeded: {created_count} created, {updated_count} reset, "
            f"{deleted} removed, {reassigned} users reassigned"
        )
        return {
            "created": created_count,
            "updated": updated_count,
            "deleted": deleted,
            "reassigned": reassigned,
        }

    # --- Custom roles ---

    def _validate_permissions(self, permissions: Iterable[str]) -> list:
        permissions = list(dict.fromkeys(permissions or []))
        unknown = sorted(set(permissions) - self.known_capabilities)
        if unknown:
            raise ValidationError(
                "Unknown capabilities", details={"unknown": unknown}
            )
        return permissions

    def create_role(self, name: str, display_name: str, description: str = "", permissions=None) -> Role:
        normalized = (name or "").strip().lower()
        if not normalized:
            raise ValidationError("Role name is required")
        if not display_name:
            raise ValidationError("Display name is required")
        if Role.objects.filter(name=normalized).exists():
            raise StateConflict(f"Role '{normalized}' already exists", error_code="role_exists")
        return Role.objects.create(
            name=normalized,
            display_name=display_name,
            description=description or "",
            permissions=self._validate_permissions(permissions),
            is_system=False,
        )

    def update_role(self, name: str, **changes) -> Role:
        role = self.resolve_role(name)
        if role.is_system and "permissions" in changes:
            raise StateConflict(
                "Permissions of system roles cannot be changed", error_code="system_role"
            )
        if "permissions" in changes:
            role.permissions = self._validate_permissions(changes["permissions"])
        for field in ("display_name", "description"):
            if field in changes:
                setattr(role, field, changes[field] or "")
        role.save()
        return role

    def delete_role(self, name: str) -> None:
        role = self.resolve_role(name)
        if role.is_system:
            raise StateConflict("System roles cannot be deleted", error_code="system_role")
        if role.profiles.exists():
            raise StateConflict(
                "Role is still assigned to users", error_code="role_in_use",
                details={"users": role.profiles.count()},
            )
        role.delete()

    def assign_role(self, user, name: str) -> Role:
        role = self.resolve_role(name)
        profile = user.profile
        profile.role = role
        profile.save(update_fields=["role"])
        return role


def get_role_registry() -> RoleRegistry:
    """Return the registry built by the portal app config."""
    return apps.get_app_config("portal").role_registry
