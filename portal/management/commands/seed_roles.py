from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from portal.accounts.registry import get_role_registry


class Command(BaseCommand):
    help = "Create or reset the system roles. Users of removed roles get the default role."

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Seed even though user accounts already exist",
        )

    def handle(self, *args, **options):
        if get_user_model().objects.exists() and not options["force"]:
            raise CommandError(
                "User accounts exist. Custom roles would be removed and their users "
                "moved to the default role. Re-run with --force to continue."
            )

        self.stdout.write("Seeding roles...")
        result = get_role_registry().seed()

        self.stdout.write(
            self.style.SUCCESS(
                f"Roles seeded: {result['created']} created, {result['updated']} reset, "
                f"{result['deleted']} removed, {result['reassigned']} users reassigned"
            )
        )
