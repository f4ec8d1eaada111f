from django.core.management.base import BaseCommand
from services.dispatch import check_course_notifications


class Command(BaseCommand):
    help = "Send unlock and start reminder notifications for accepted courses."

    def handle(self, *args, **options):
        result = check_course_notifications()

        self.stdout.write(
            self.style.SUCCESS(
                f"Sent {result.unlocked} unlock notification(s) and {result.reminders} reminder(s)."
            )
        )
