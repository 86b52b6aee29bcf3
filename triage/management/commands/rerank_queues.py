from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from triage.exceptions import QueueError
from triage.services.lifecycle import get_queue_service


class Command(BaseCommand):
    help = "Re-rank waiting queues so waiting-time boosts and estimates stay current; notify moved patients."

    def add_arguments(self, parser):
        parser.add_argument('--hospital', help="Only re-rank queues of this hospital.")
        parser.add_argument('--department', help="Only re-rank this department (requires --hospital).")

    def handle(self, *args, **options):
        hospital = options.get('hospital')
        department = options.get('department')
        if department and not hospital:
            raise CommandError("--department requires --hospital")

        service = get_queue_service()
        partitions = service.store.partition_keys()
        if hospital:
            partitions = [p for p in partitions if p.hospital == hospital]
        if department:
            partitions = [p for p in partitions if p.department == department]

        ranked = notified = failed = 0
        for partition in partitions:
            try:
                outcome = service.rerank(*partition)
            except QueueError as e:
                failed += 1
                self.stderr.write(f"{partition}: {e}")
                continue
            ranked += 1
            notified += len(outcome.notifications)

        self.stdout.write(self.style.SUCCESS(
            f"Re-ranked {ranked} queue(s), {notified} notification(s), {failed} failure(s) at {timezone.now()}"
        ))
