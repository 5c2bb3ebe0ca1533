"""
Exam Portal Account Serializers

Serializers:
- PortalTokenObtainPairSerializer: JWT with role and verification claims
- RegisterSerializer / SignInSerializer: Public account flows
- TokenSerializer / PasswordResetSerializer / ChangePasswordSerializer
- RoleSerializer: Role management
- UserSerializer: Administrative user management and current user info

Author: Exam Portal Development Team
Version: 1.0.0
"""

from typing import Any, Dict

from django.contrib.auth.models import User
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from .models import Profile, Role
from .registry import get_role_registry


class PortalTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    JWT serializer adding portal claims to the token payload.

    Token Payload Includes:
    - username: User identification
    - role: Name of the user's role
    - permissions: Capabilities of that role
    - is_superuser: Superuser privileges flag
    """

    @classmethod
    def get_token(cls, user: User) -> RefreshToken:
        token = super().get_token(user)

        token["username"] = user.username
        token["is_superuser"] = user.is_superuser
        try:
            token["role"] = user.profile.role.name
            token["permissions"] = list(user.profile.role.permissions)
        except Profile.DoesNotExist:
            token["role"] = None
            token["permissions"] = []

        return token


class RegisterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})
    password_confirm = serializers.CharField(write_only=True, style={"input_type": "password"})

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if attrs["password"] != attrs["password_confirm"]:
            raise serializers.ValidationError({"password_confirm": _("Passwords do not match.")})
        return attrs


class SignInSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})


class EmailSerializer(serializers.Serializer):
    email = serializers.EmailField()


class TokenSerializer(serializers.Serializer):
    token = serializers.CharField()


class PasswordResetSerializer(serializers.Serializer):
    """
    Password reset with confirmation.

    Strength rules are applied by the account service through Django's
    password validators.
    """

    token = serializers.CharField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})
    password_confirm = serializers.CharField(write_only=True, style={"input_type": "password"})

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if attrs["password"] != attrs["password_confirm"]:
            raise serializers.ValidationError({"password_confirm": _("Passwords do not match.")})
        return attrs


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)


class RoleSerializer(serializers.ModelSerializer):
    user_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Role
        fields = ("id", "name", "display_name", "description", "permissions", "is_system", "user_count")
        read_only_fields = ("id", "is_system", "user_count")

    def validate_permissions(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError(_("Permissions must be a list of strings."))
        return value


class UserSerializer(serializers.ModelSerializer):
    """
    User data with the profile fields the portal cares about.

    ``role`` is written by name and validated against the role registry.
    """

    full_name = serializers.SerializerMethodField()
    role = serializers.CharField(source="profile.role.name", required=False)
    email_verified = serializers.BooleanField(source="profile.email_verified", read_only=True)
    login_count = serializers.IntegerField(source="profile.login_count", read_only=True)
    password = serializers.CharField(write_only=True, required=False, style={"input_type": "password"})

    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "full_name",
            "role",
            "email_verified",
            "login_count",
            "is_active",
            "is_superuser",
            "date_joined",
            "last_login",
            "password",
        )
        read_only_fields = ("id", "username", "date_joined", "last_login", "is_superuser")

    def get_full_name(self, obj: User) -> str:
        return obj.get_full_name() or obj.username

    def validate_email(self, value: str) -> str:
        value = value.strip().lower()
        user_id = self.instance.id if self.instance else None
        if User.objects.filter(email__iexact=value).exclude(id=user_id).exists():
            raise serializers.ValidationError(_("A user with this email address already exists."))
        return value

    def validate_role(self, value: str) -> str:
        get_role_registry().resolve_role(value)
        return value

    def create(self, validated_data: Dict[str, Any]) -> User:
        role_name = validated_data.pop("profile", {}).get("role", {}).get("name")
        password = validated_data.pop("password", None)
        user = User(username=validated_data["email"], **validated_data)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save()
        # Created by an administrator, so the address counts as verified
        user.profile.email_verified = True
        user.profile.save(update_fields=["email_verified"])
        if role_name:
            get_role_registry().assign_role(user, role_name)
        return user

    def update(self, instance: User, validated_data: Dict[str, Any]) -> User:
        role_name = validated_data.pop("profile", {}).get("role", {}).get("name")
        password = validated_data.pop("password", None)
        for field, value in validated_data.items():
            setattr(instance, field, value)
        if "email" in validated_data:
            instance.username = validated_data["email"]
        if password:
            instance.set_password(password)
        instance.save()
        if role_name:
            get_role_registry().assign_role(instance, role_name)
        return instance
