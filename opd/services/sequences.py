"""
Race-free allocation of serial numbers, queue positions, bill numbers and
patient codes.

Each logical counter is a :class:`~opd.models.SequenceCounter` row keyed by
``(name, period)``.  Allocation locks that row with ``SELECT ... FOR UPDATE``
and increments it inside the caller's transaction, so concurrent
registrations for the same doctor on the same day queue up behind one
another while other doctors proceed in parallel.  A counter row that does
not exist yet is seeded from the data already on disk.

Locks are always taken in the same order to avoid deadlocks:
doctor-day counter, then patient code counter, then bill number counter.
"""
from __future__ import annotations

import logging
import time
from datetime import date
from typing import Callable, TypeVar

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import Max

from ..exceptions import SequenceContention
from ..metrics import SEQUENCE_RETRIES
from ..models import Appointment, Bill, Patient, SequenceCounter

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _lock_counter(name: str, period: str, seed: Callable[[], int]) -> SequenceCounter:
    counter, created = SequenceCounter.objects.select_for_update().get_or_create(
        name=name, period=period, defaults={'value': seed()},
    )
    if created:
        logger.debug('Seeded counter %s@%s at %s', name, period, counter.value)
    return counter


def _bump(counter: SequenceCounter) -> int:
    counter.value += 1
    counter.save(update_fields=['value', 'updated_at'])
    return counter.value


def lock_doctor_day(doctor_id: int, day: date) -> SequenceCounter:
    """Lock the doctor's serial counter for ``day``.

    Every write that changes a doctor's queue for a day holds this lock, so
    allocation and compaction never interleave.
    """
    def seed() -> int:
        agg = Appointment.objects.filter(doctor_id=doctor_id, appointment_date=day).aggregate(m=Max('serial_number'))
        return agg['m'] or 0

    return _lock_counter(f'serial:{doctor_id}', day.isoformat(), seed)


def next_serial_number(doctor_id: int, day: date) -> int:
    """One more than the highest serial issued to the doctor on ``day``.

    Serials are never reused, even after cancellations.
    """
    return _bump(lock_doctor_day(doctor_id, day))


def next_queue_position(doctor_id: int, day: date) -> int:
    """Active occupancy of the doctor's queue plus one.

    Must be called while the doctor-day lock is held.
    """
    active = Appointment.objects.filter(
        doctor_id=doctor_id, appointment_date=day, status__in=Appointment.ACTIVE_STATUSES,
    ).count()
    return active + 1


def compact_queue_positions(doctor_id: int, day: date) -> int:
    """Renumber the doctor's active appointments to 1..k.

    Relative order is preserved (position, then serial as tie-break).
    Returns the number of rows whose position changed.
    """
    lock_doctor_day(doctor_id, day)
    active = list(
        Appointment.objects.select_for_update()
        .filter(doctor_id=doctor_id, appointment_date=day, status__in=Appointment.ACTIVE_STATUSES)
        .order_by('queue_position', 'serial_number')
    )
    changed = []
    for position, appt in enumerate(active, start=1):
        if appt.queue_position != position:
            appt.queue_position = position
            changed.append(appt)
    if changed:
        Appointment.objects.bulk_update(changed, ['queue_position'])
    return len(changed)


def next_bill_number(on: date) -> str:
    """``B-<year>-<seq>``, seq zero padded to at least four digits."""
    prefix = f'{settings.BILL_NUMBER_PREFIX}-{on.year}-'

    def seed() -> int:
        return Bill.objects.filter(bill_number__startswith=prefix).count()

    value = _bump(_lock_counter('bill', str(on.year), seed))
    return f'{prefix}{value:04d}'


def next_patient_code(on: date) -> str:
    """``PID<YY>-<seq>``, seq zero padded to six digits, restarting each year."""
    yy = on.strftime('%y')
    prefix = f'{settings.PATIENT_ID_PREFIX}{yy}-'

    def seed() -> int:
        last = (
            Patient.objects.filter(patient_id__startswith=prefix)
            .order_by('-patient_id')
            .values_list('patient_id', flat=True)
            .first()
        )
        if not last:
            return 0
        try:
            return int(last[len(prefix):])
        except ValueError:
            return 0

    value = _bump(_lock_counter('patient', yy, seed))
    return f'{prefix}{value:06d}'


def run_atomic_with_retry(fn: Callable[..., T], *args, label: str = 'allocation', **kwargs) -> T:
    """Run ``fn`` in its own transaction, retrying lock and uniqueness conflicts.

    Deadlocks, lock timeouts and unique-index collisions are retried up to
    ``SEQUENCE_MAX_ATTEMPTS`` times with exponential backoff.  Once the
    attempts are used up :class:`SequenceContention` is raised.  Domain
    errors raised by ``fn`` propagate immediately.
    """
    attempts = max(1, int(settings.SEQUENCE_MAX_ATTEMPTS))
    backoff = float(settings.SEQUENCE_RETRY_BACKOFF)
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return fn(*args, **kwargs)
        except (IntegrityError, OperationalError) as exc:
            if attempt >= attempts:
                logger.error('%s: giving up after %s attempts (%s)', label, attempts, exc.__class__.__name__)
                raise SequenceContention() from exc
            SEQUENCE_RETRIES.inc()
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                '%s: conflict on attempt %s/%s (%s), retrying in %.2fs',
                label, attempt, attempts, exc.__class__.__name__, delay,
            )
            if delay:
                time.sleep(delay)
    raise SequenceContention()  # pragma: no cover
