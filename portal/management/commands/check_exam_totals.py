from django.core.management.base import BaseCommand, CommandError

from portal.catalog.services import ExamCatalog


class Command(BaseCommand):
    help = "Compare the cached question count and total marks of every exam with its questions"

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Correct the cached values of inconsistent exams",
        )

    def handle(self, *args, **options):
        fix = options["fix"]
        inconsistent = ExamCatalog().check_totals(fix=fix)

        for entry in inconsistent:
            self.stdout.write(
                f'Exam {entry["exam_id"]} "{entry["title"]}": '
                f'count {entry["stored_count"]} != {entry["actual_count"]} or '
                f'total {entry["stored_total"]} != {entry["actual_total"]}'
            )

        if not inconsistent:
            self.stdout.write(self.style.SUCCESS("All exam totals are consistent"))
        elif fix:
            self.stdout.write(self.style.SUCCESS(f"Corrected {len(inconsistent)} exams"))
        else:
            raise CommandError(f"{len(inconsistent)} exams have inconsistent totals, run with --fix")
