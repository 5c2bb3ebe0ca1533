"""
Notification Dispatcher

Creates user-facing notification records for system events. Delivery is
best effort: failures are logged per recipient and never propagate to the
operation that triggered the notification.

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from ..exceptions import NotFound, ValidationError
from .models import Notification

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Creates and reads in-app notifications."""

    def notify(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        link: str = "",
    ) -> Notification:
        if type not in Notification.Type.values:
            raise ValidationError(f"'{type}' is not a valid notification type")
        return Notification.objects.create(
            user_id=user_id, type=type, title=title, message=message, link=link or ""
        )

    def notify_many(self, user_ids: Iterable[int], payload: dict) -> List[Notification]:
        """
        Notify several users, isolating failures per recipient.

        Returns:
            The notifications that were created
        """
        created = []
        for user_id in user_ids:
            try:
                # Savepoint per recipient keeps an outer transaction usable
                with transaction.atomic():
                    created.append(self.notify(user_id, **payload))
            except (DatabaseError, ValidationError) as e:
                logger.warning(f"Notification for user {user_id} failed: {e}")
        return created

    def notify_on_commit(self, user_id: int, type: str, title: str, message: str, link: str = "") -> None:
        """Schedule a notification once the current transaction commits."""

        def _send():
            try:
                self.notify(user_id, type, title, message, link)
            except (DatabaseError, ValidationError) as e:
                logger.warning(f"Deferred notification for user {user_id} failed: {e}")

        transaction.on_commit(_send)

    # --- Reads ---

    def unread_count(self, user) -> int:
        return Notification.objects.filter(user=user).unread().count()

    def recent(self, user, limit: int = 20):
        return Notification.objects.filter(user=user).visible()[:limit]

    def _get_for_user(self, user, notification_id: int) -> Notification:
        try:
            return Notification.objects.visible().get(pk=notification_id, user=user)
        except Notification.DoesNotExist:
            raise NotFound("Notification not found")

    def mark_read(self, user, notification_id: int) -> Notification:
        notification = self._get_for_user(user, notification_id)
        notification.mark_as_read()
        return notification

    def mark_all_read(self, user) -> int:
        return Notification.objects.filter(user=user).unread().update(read=True)

    def delete(self, user, notification_id: int) -> None:
        self._get_for_user(user, notification_id).delete()

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        deleted, _ = Notification.objects.filter(expires_at__lte=now or timezone.now()).delete()
        if deleted:
            logger.info(f"Purged {deleted} expired notifications")
        return deleted
