from django.core.management.base import BaseCommand

from portal.attempts.services import AttemptEngine


class Command(BaseCommand):
    help = "Close in-progress attempts that ran past their deadline"

    def handle(self, *args, **options):
        self.stdout.write("Closing expired attempts...")

        result = AttemptEngine().sweep_expired()

        self.stdout.write(
            self.style.SUCCESS(
                f"{result['submitted']} attempts auto-submitted, "
                f"{result['completed']} completed after the exam window closed"
            )
        )
