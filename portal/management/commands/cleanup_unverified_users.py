from django.conf import settings
from django.core.management.base import BaseCommand

from portal.accounts.services import AccountService


class Command(BaseCommand):
    help = "Delete accounts that did not verify their e-mail address in time"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many accounts would be deleted",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        count = AccountService().cleanup_unverified(dry_run=dry_run)
        hours = settings.UNVERIFIED_ACCOUNT_TTL_HOURS

        if dry_run:
            self.stdout.write(f"{count} unverified accounts older than {hours}h would be deleted")
        else:
            self.stdout.write(self.style.SUCCESS(f"Deleted {count} unverified accounts older than {hours}h"))
