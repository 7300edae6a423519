from django.core.management.base import BaseCommand, CommandError

from opd.models import Doctor
from opd.realtime.broadcaster import QueueBroadcaster
from opd.services.queue import doctors_with_active_queue


class Command(BaseCommand):
    help = "Re-send the current queue snapshot to live viewers (one doctor, or every doctor with an active queue today)."

    def add_arguments(self, parser):
        parser.add_argument('--doctor', type=int, help='Doctor id; default is every doctor with an active queue today')

    def handle(self, *args, **options):
        doctor_id = options.get('doctor')
        if doctor_id is not None:
            if not Doctor.objects.filter(pk=doctor_id).exists():
                raise CommandError(f'Doctor {doctor_id} does not exist')
            doctor_ids = [doctor_id]
        else:
            doctor_ids = doctors_with_active_queue()

        # Synchronous publish: the command exits right after.
        broadcaster = QueueBroadcaster.from_settings()
        sent = sum(1 for d in doctor_ids if broadcaster.publish(d))

        if sent < len(doctor_ids):
            self.stderr.write(self.style.WARNING(f"{len(doctor_ids) - sent} snapshot(s) could not be sent, see log"))
        self.stdout.write(self.style.SUCCESS(f"Pushed {sent} queue snapshot(s)"))
