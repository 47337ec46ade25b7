"""
Django management command to remind recipients who have not answered.

Run once a day (cron or a scheduled job). Safe to run on several instances at
the same time and safe to re-run: each reminder slot is reserved in the
database before the email goes out, so nobody is reminded twice.

Usage:
    python manage.py send_question_reminders
    python manage.py send_question_reminders --dry-run
    python manage.py send_question_reminders --verbose
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from heirloom_app.questions.services.reminder_service import ReminderService


class Command(BaseCommand):
    help = "Send reminders to question recipients who have not answered yet"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show who would be reminded without sending anything",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show detailed output",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        verbose = options["verbose"]
        now = timezone.now()

        self.stdout.write(
            self.style.SUCCESS(f"Starting question reminder sweep at {now}")
        )

        if dry_run:
            self.stdout.write(
                self.style.WARNING("DRY RUN MODE - No reminders will be sent")
            )

        if verbose:
            for recipient in ReminderService.get_due_recipients(now):
                self.stdout.write(
                    f"  - Recipient {recipient.pk} "
                    f"(request {recipient.request_id}, "
                    f"reminders sent: {recipient.reminders_sent})"
                )

        result = ReminderService.run_sweep(now=now, dry_run=dry_run)

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f"Would send {result.considered} reminders")
            )
            return

        self.stdout.write(self.style.SUCCESS(f"Sent {result.sent} reminders"))
        if result.skipped:
            self.stdout.write(
                f"Skipped {result.skipped} reminders already sent by another run"
            )
        if result.failed:
            self.stdout.write(
                self.style.ERROR(
                    f"{result.failed} reminders failed and will be retried next run"
                )
            )

        self.stdout.write(
            self.style.SUCCESS(f"Reminder sweep completed at {timezone.now()}")
        )
