from datetime import timedelta
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from portal.exceptions import NotFound, ValidationError
from portal.notifications.models import Notification
from portal.notifications.services import NotificationDispatcher

from .helpers import make_user, seed_roles


class NotificationDispatcherTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.alice = make_user("alice@example.com")
        cls.bob = make_user("bob@example.com")

    def setUp(self):
        self.dispatcher = NotificationDispatcher()

    def test_notify_creates_unread_notification(self):
        notification = self.dispatcher.notify(self.alice.pk, "system", "Maintenance", "Tonight at 10pm")

        self.assertFalse(notification.read)
        self.assertGreater(notification.expires_at, timezone.now())
        self.assertEqual(self.dispatcher.unread_count(self.alice), 1)

    def test_unknown_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.dispatcher.notify(self.alice.pk, "gossip", "Title", "Message")

    def test_notify_many_isolates_failures(self):
        original = self.dispatcher.notify

        def flaky(user_id, **payload):
            if user_id == self.alice.pk:
                raise DatabaseError("disk full")
            return original(user_id, **payload)

        with mock.patch.object(self.dispatcher, "notify", side_effect=flaky):
            created = self.dispatcher.notify_many(
                [self.alice.pk, self.bob.pk], {"type": "system", "title": "Hello", "message": "World"}
            )

        self.assertEqual([n.user_id for n in created], [self.bob.pk])

    def test_notify_on_commit_waits_for_the_transaction(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self.dispatcher.notify_on_commit(self.alice.pk, "exam", "Result", "Ready")
        self.assertFalse(Notification.objects.exists())

        callbacks[0]()
        self.assertTrue(Notification.objects.filter(user=self.alice).exists())

    def test_mark_read_and_mark_all_read(self):
        first = self.dispatcher.notify(self.alice.pk, "exam", "One", "1")
        self.dispatcher.notify(self.alice.pk, "exam", "Two", "2")
        self.dispatcher.notify(self.alice.pk, "exam", "Three", "3")

        self.dispatcher.mark_read(self.alice, first.pk)
        self.assertEqual(self.dispatcher.unread_count(self.alice), 2)

        self.assertEqual(self.dispatcher.mark_all_read(self.alice), 2)
        self.assertEqual(self.dispatcher.unread_count(self.alice), 0)

    def test_other_users_notifications_are_not_found(self):
        notification = self.dispatcher.notify(self.alice.pk, "exam", "Private", "Only Alice")

        with self.assertRaises(NotFound):
            self.dispatcher.mark_read(self.bob, notification.pk)
        with self.assertRaises(NotFound):
            self.dispatcher.delete(self.bob, notification.pk)

    def test_expired_notifications_are_hidden_and_purged(self):
        expired = self.dispatcher.notify(self.alice.pk, "system", "Old", "Old news")
        Notification.objects.filter(pk=expired.pk).update(expires_at=timezone.now() - timedelta(days=1))
        self.dispatcher.notify(self.alice.pk, "system", "New", "Fresh news")

        self.assertEqual([n.title for n in self.dispatcher.recent(self.alice)], ["New"])
        self.assertEqual(self.dispatcher.unread_count(self.alice), 1)

        self.assertEqual(self.dispatcher.purge_expired(), 1)
        self.assertFalse(Notification.objects.filter(pk=expired.pk).exists())
