from django.core.management.base import BaseCommand

from assessments.services import ExamAttemptService


class Command(BaseCommand):
    help = 'Finishes and scores every in-progress exam attempt whose deadline has passed'

    def handle(self, *args, **options):
        expired = ExamAttemptService.expire_overdue_attempts()
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} overdue attempt(s)"))
