from django.contrib.auth.models import User
from django.test import TestCase

from portal.accounts.models import Profile, Role
from portal.accounts.registry import RoleRegistry, get_role_registry
from portal.exceptions import RoleNotFound, StateConflict, ValidationError
from portal.permissions import user_can

from .helpers import make_user, seed_roles

"""
    Tests for the role registry: seeding, capability checks and custom roles.
"""


class RoleSeedTests(TestCase):
    def test_seed_creates_system_roles(self):
        result = get_role_registry().seed()

        self.assertEqual(
            set(Role.objects.values_list("name", flat=True)),
            {"superadmin", "admin", "instructor", "user"},
        )
        self.assertEqual(Role.objects.filter(is_system=True).count(), 4)
        self.assertEqual(result["deleted"], 0)

    def test_seed_restores_changed_permissions(self):
        seed_roles()
        Role.objects.filter(name="instructor").update(permissions=["take_exam"])

        get_role_registry().seed()

        self.assertIn("create_exam", Role.objects.get(name="instructor").permissions)

    def test_seed_moves_users_of_custom_roles_to_default_role(self):
        seed_roles()
        registry = get_role_registry()
        registry.create_role("proctor", "Proctor", permissions=["view_results"])
        user = make_user("proctored@example.com", role="proctor")

        result = registry.seed()

        self.assertEqual(result["deleted"], 1)
        self.assertEqual(result["reassigned"], 1)
        self.assertEqual(Profile.objects.get(user=user).role.name, "user")
        self.assertFalse(Role.objects.filter(name="proctor").exists())

    def test_unknown_default_role_is_rejected(self):
        with self.assertRaises(ValueError):
            RoleRegistry(default_role_name="nobody")


class CapabilityTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.student = make_user("student@example.com")
        cls.instructor = make_user("instructor@example.com", role="instructor")
        cls.superadmin = make_user("root@example.com", role="superadmin")

    def test_new_user_gets_default_role(self):
        user = User.objects.create_user(username="fresh", email="fresh@example.com", password="x")
        self.assertEqual(user.profile.role.name, "user")
        self.assertFalse(user.profile.email_verified)

    def test_student_can_take_exam_but_not_create_one(self):
        self.assertTrue(user_can(self.student, "take_exam"))
        self.assertFalse(user_can(self.student, "create_exam"))

    def test_instructor_capabilities(self):
        self.assertTrue(user_can(self.instructor, "create_exam"))
        self.assertFalse(user_can(self.instructor, "manage_payments"))

    def test_wildcard_grants_everything(self):
        self.assertTrue(user_can(self.superadmin, "manage_payments", "anything_else"))

    def test_inactive_user_has_no_capabilities(self):
        self.student.is_active = False
        self.assertFalse(user_can(self.student, "take_exam"))

    def test_django_superuser_has_every_capability(self):
        root = User.objects.create_superuser("admin", "admin@example.com", "x")
        self.assertTrue(user_can(root, "manage_users"))
        self.assertTrue(root.profile.email_verified)

    def test_has_permission_without_role(self):
        self.assertFalse(RoleRegistry.has_permission(None, "take_exam"))


class CustomRoleTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()

    def test_create_role_normalizes_name(self):
        role = get_role_registry().create_role(" Proctor ", "Proctor", permissions=["view_results"])
        self.assertEqual(role.name, "proctor")
        self.assertFalse(role.is_system)

    def test_create_role_rejects_unknown_capability(self):
        with self.assertRaises(ValidationError) as ctx:
            get_role_registry().create_role("proctor", "Proctor", permissions=["fly"])
        self.assertEqual(ctx.exception.details["unknown"], ["fly"])

    def test_create_existing_role_conflicts(self):
        with self.assertRaises(StateConflict):
            get_role_registry().create_role("admin", "Admin again")

    def test_system_role_permissions_are_fixed(self):
        with self.assertRaises(StateConflict):
            get_role_registry().update_role("user", permissions=["manage_users"])

    def test_system_role_can_be_renamed_for_display(self):
        role = get_role_registry().update_role("user", display_name="Candidate")
        self.assertEqual(role.display_name, "Candidate")

    def test_system_role_cannot_be_deleted(self):
        with self.assertRaises(StateConflict):
            get_role_registry().delete_role("admin")

    def test_role_in_use_cannot_be_deleted(self):
        registry = get_role_registry()
        registry.create_role("proctor", "Proctor")
        make_user("busy@example.com", role="proctor")

        with self.assertRaises(StateConflict) as ctx:
            registry.delete_role("proctor")
        self.assertEqual(ctx.exception.error_code, "role_in_use")

    def test_unused_custom_role_is_deleted(self):
        registry = get_role_registry()
        registry.create_role("proctor", "Proctor")
        registry.delete_role("proctor")
        self.assertFalse(Role.objects.filter(name="proctor").exists())

    def test_assign_unknown_role(self):
        user = make_user("lost@example.com")
        with self.assertRaises(RoleNotFound):
            get_role_registry().assign_role(user, "wizard")
