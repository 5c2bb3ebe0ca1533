from django.core.management.base import BaseCommand

from portal.accounts.services import AccountService
from portal.notifications.services import NotificationDispatcher


class Command(BaseCommand):
    help = "Delete expired notifications and account activity past its retention window"

    def handle(self, *args, **options):
        notifications = NotificationDispatcher().purge_expired()
        self.stdout.write(f"Deleted {notifications} expired notifications")

        activities = AccountService().purge_activity()
        self.stdout.write(f"Deleted {activities} account activity records")

        self.stdout.write(self.style.SUCCESS("Purge finished"))
