from datetime import date, timedelta

import pytest
from django.db import IntegrityError, OperationalError, transaction
from django.utils import timezone

from opd.exceptions import DoctorNotFound, SequenceContention
from opd.models import Appointment, SequenceCounter
from opd.services import sequences

pytestmark = pytest.mark.django_db


def test_serials_are_contiguous_per_doctor_and_day(make_doctor):
    d1, d2 = make_doctor(), make_doctor()
    today = timezone.localdate()
    with transaction.atomic():
        assert [sequences.next_serial_number(d1.id, today) for _ in range(3)] == [1, 2, 3]
        assert sequences.next_serial_number(d2.id, today) == 1
        assert sequences.next_serial_number(d1.id, today + timedelta(days=1)) == 1


def test_serial_counter_seeds_from_existing_appointments(doctor, patient, make_appointment):
    make_appointment(doctor, patient, serial=7, status=Appointment.Status.CANCELLED)
    with transaction.atomic():
        assert sequences.next_serial_number(doctor.id, timezone.localdate()) == 8


def test_serials_are_not_reused_after_cancellation(doctor, patient, make_appointment):
    today = timezone.localdate()
    with transaction.atomic():
        first = sequences.next_serial_number(doctor.id, today)
    make_appointment(doctor, patient, serial=first, status=Appointment.Status.CANCELLED)
    with transaction.atomic():
        assert sequences.next_serial_number(doctor.id, today) == first + 1


def test_queue_position_counts_only_active_appointments(doctor, make_patient, make_appointment):
    make_appointment(doctor, make_patient(), serial=1, position=1, status=Appointment.Status.COMPLETED)
    make_appointment(doctor, make_patient(), serial=2, position=1, status=Appointment.Status.IN_CONSULTATION)
    make_appointment(doctor, make_patient(), serial=3, position=2)
    with transaction.atomic():
        assert sequences.next_queue_position(doctor.id, timezone.localdate()) == 3


def test_compaction_closes_gaps_and_keeps_order(doctor, make_patient, make_appointment):
    a = make_appointment(doctor, make_patient(), serial=1, position=1)
    b = make_appointment(doctor, make_patient(), serial=2, position=2, status=Appointment.Status.CANCELLED)
    c = make_appointment(doctor, make_patient(), serial=3, position=3)
    e = make_appointment(doctor, make_patient(), serial=4, position=5)

    with transaction.atomic():
        changed = sequences.compact_queue_positions(doctor.id, timezone.localdate())

    assert changed == 2
    for row in (a, b, c, e):
        row.refresh_from_db()
    assert (a.queue_position, c.queue_position, e.queue_position) == (1, 2, 3)
    assert b.queue_position == 2  # left the queue, keeps its last position


def test_bill_numbers_are_yearly_and_padded():
    with transaction.atomic():
        assert sequences.next_bill_number(date(2026, 3, 1)) == 'B-2026-0001'
        assert sequences.next_bill_number(date(2026, 12, 31)) == 'B-2026-0002'
        assert sequences.next_bill_number(date(2027, 1, 1)) == 'B-2027-0001'


def test_patient_codes_restart_each_year(make_patient):
    make_patient(patient_id='PID26-000041')
    with transaction.atomic():
        assert sequences.next_patient_code(date(2026, 5, 1)) == 'PID26-000042'
        assert sequences.next_patient_code(date(2027, 1, 2)) == 'PID27-000001'
    assert SequenceCounter.objects.filter(name='patient').count() == 2


def test_retry_wrapper_recovers_from_transient_conflicts():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError('deadlock detected')
        return 'ok'

    assert sequences.run_atomic_with_retry(flaky) == 'ok'
    assert len(calls) == 3


def test_retry_wrapper_gives_up_with_contention_error(settings):
    settings.SEQUENCE_MAX_ATTEMPTS = 4
    calls = []

    def always_conflicts():
        calls.append(1)
        raise IntegrityError('duplicate key')

    with pytest.raises(SequenceContention) as exc:
        sequences.run_atomic_with_retry(always_conflicts)
    assert len(calls) == 4
    assert exc.value.retryable is True


def test_retry_wrapper_does_not_retry_domain_errors():
    calls = []

    def missing():
        calls.append(1)
        raise DoctorNotFound()

    with pytest.raises(DoctorNotFound):
        sequences.run_atomic_with_retry(missing)
    assert len(calls) == 1
