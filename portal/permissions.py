from rest_framework.permissions import BasePermission

from .accounts.registry import get_role_registry


class CapabilityPermission(BasePermission):
    """Allows access only if the user's role grants one of the capabilities."""

    capabilities: tuple = ()
    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return get_role_registry().user_has_any_permission(user, self.capabilities)


def HasCapability(*capabilities: str) -> type:
    """
    Build a permission class for the given capabilities.

    REST framework instantiates permission classes without arguments, so the
    capabilities are bound on a subclass:

        permission_classes = [HasCapability("manage_exams", "edit_exam")]
    """
    name = "HasCapability_" + "_".join(capabilities)
    return type(name, (CapabilityPermission,), {"capabilities": tuple(capabilities)})


def user_can(user, *capabilities: str) -> bool:
    return get_role_registry().user_has_any_permission(user, capabilities)
