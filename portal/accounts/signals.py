"""
Signal handlers for automatic profile management.

Every user gets exactly one profile holding the default role, whatever path
created the user (registration, admin, createsuperuser, tests).
"""

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Profile
from .registry import get_role_registry


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_profile(sender, instance, created: bool, raw: bool = False, **kwargs) -> None:
    """
    Create the profile of a user that has none yet.

    Superusers are considered verified since they are created by operators.

    Args:
        sender: The User model class
        instance: The actual User instance that was saved
        created: Boolean indicating if this is a new instance
        raw: True when loading fixtures
    """
    if raw:
        return
    if not created and Profile.objects.filter(user=instance).exists():
        return
    Profile.objects.create(
        user=instance,
        role=get_role_registry().default_role(),
        email_verified=instance.is_superuser,
    )
