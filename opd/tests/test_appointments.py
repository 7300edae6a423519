import threading
from decimal import Decimal

import pytest
from django.db import connection, connections
from django.utils import timezone

from opd.exceptions import (
    DoctorNotFound,
    DuplicatePhone,
    ImmutableRecordError,
    InvalidTransition,
    NoPatientsWaiting,
    PatientNotFound,
    SequenceContention,
)
from opd.models import Appointment, AppointmentEvent, Bill, EventType, Patient
from opd.services import appointments as svc
from opd.services import events

pytestmark = pytest.mark.django_db

Status = Appointment.Status


class RecordingBroadcaster:
    def __init__(self):
        self.notified = []

    def notify(self, doctor_id):
        self.notified.append(doctor_id)


def _register(doctor, patient, **kw):
    return svc.create_appointment(patient_id=patient.id, doctor_id=doctor.id, **kw)


def _positions(doctor):
    return list(
        Appointment.objects.filter(doctor=doctor, status__in=Appointment.ACTIVE_STATUSES)
        .order_by('queue_position').values_list('serial_number', 'queue_position')
    )


def test_register_existing_patient(doctor, patient, reception):
    appt = _register(doctor, patient, chief_complaint='Fever <b>3 days</b>', initiated_by=reception)

    assert (appt.serial_number, appt.queue_position, appt.status) == (1, 1, Status.WAITING)
    today = timezone.localdate()
    assert appt.appointment_date == today
    assert appt.appointment_month == today.strftime('%Y-%m')
    assert appt.initiated_by == reception

    bill = Bill.objects.get(appointment=appt)
    assert (bill.total_amount, bill.due_amount, bill.paid_amount) == (Decimal('600.00'), Decimal('600.00'), 0)
    assert bill.status == Bill.Status.PENDING

    kinds = [e.event_type for e in events.timeline(appt)]
    assert kinds == [EventType.APPOINTMENT_REGISTERED, EventType.QUEUE_JOINED, EventType.CONSULTATION_BILLED]
    billed = events.latest(appt, EventType.CONSULTATION_BILLED)
    assert billed.metadata == {'billNumber': bill.bill_number, 'amount': '600.00'}
    assert billed.performed_by == reception


def test_second_registration_gets_next_serial_and_position(doctor, make_patient):
    first = _register(doctor, make_patient())
    second = _register(doctor, make_patient())
    assert (second.serial_number, second.queue_position) == (2, 2)
    assert first.bill.bill_number != second.bill.bill_number


def test_queues_are_independent_per_doctor(make_doctor, make_patient):
    d1, d2 = make_doctor(), make_doctor()
    _register(d1, make_patient())
    appt = _register(d2, make_patient())
    assert (appt.serial_number, appt.queue_position) == (1, 1)


def test_unknown_doctor_or_patient(doctor, patient):
    with pytest.raises(DoctorNotFound):
        svc.create_appointment(patient_id=patient.id, doctor_id=999999)
    with pytest.raises(PatientNotFound):
        svc.create_appointment(patient_id=999999, doctor_id=doctor.id)
    assert Appointment.objects.count() == 0


def test_register_with_new_patient(doctor, reception):
    appt = svc.create_appointment_with_new_patient(
        doctor_id=doctor.id,
        patient={'name': 'Rahima Khatun', 'phone': '01711000111', 'age': 42, 'gender': 'FEMALE'},
        initiated_by=reception,
    )
    p = appt.patient
    yy = timezone.localdate().strftime('%y')
    assert p.patient_id == f'PID{yy}-000001'
    assert p.created_by == reception
    assert appt.serial_number == 1
    assert Bill.objects.filter(appointment=appt).count() == 1


def test_new_patient_with_taken_phone_writes_nothing(doctor, make_patient):
    make_patient(phone='01711000111')
    with pytest.raises(DuplicatePhone):
        svc.create_appointment_with_new_patient(
            doctor_id=doctor.id, patient={'name': 'Someone Else', 'phone': '01711000111', 'age': 30},
        )
    assert Appointment.objects.count() == 0
    assert Bill.objects.count() == 0
    assert Patient.objects.count() == 1


def test_failure_midway_rolls_back_everything(doctor, patient, monkeypatch):
    def broken_bill(*args, **kwargs):
        raise RuntimeError('printer on fire')

    monkeypatch.setattr(svc, 'create_bill_for_appointment', broken_bill)
    with pytest.raises(RuntimeError):
        _register(doctor, patient)

    assert Appointment.objects.count() == 0
    assert AppointmentEvent.objects.count() == 0
    monkeypatch.undo()
    assert _register(doctor, patient).serial_number == 1


def test_broadcast_happens_after_commit(doctor, patient, django_capture_on_commit_callbacks):
    recorder = RecordingBroadcaster()
    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        _register(doctor, patient, broadcaster=recorder)
        assert recorder.notified == []
    assert len(callbacks) == 1
    callbacks[0]()
    assert recorder.notified == [doctor.id]


def test_status_lifecycle(doctor, patient, reception):
    appt = _register(doctor, patient)

    appt = svc.update_status(appt.id, Status.IN_CONSULTATION, performed_by=reception)
    assert appt.status == Status.IN_CONSULTATION
    assert appt.entry_time is not None and appt.exit_time is None

    appt = svc.update_status(appt.id, Status.COMPLETED, performed_by=reception)
    assert appt.status == Status.COMPLETED
    assert appt.exit_time >= appt.entry_time

    kinds = [e.event_type for e in events.timeline(appt)][3:]
    assert kinds == [EventType.ENTERED_ROOM, EventType.EXITED_ROOM, EventType.APPOINTMENT_COMPLETED]


@pytest.mark.parametrize('path', [
    [Status.COMPLETED],
    [Status.IN_CONSULTATION, Status.WAITING],
    [Status.CANCELLED, Status.WAITING],
    [Status.CANCELLED, Status.IN_CONSULTATION],
    [Status.IN_CONSULTATION, Status.COMPLETED, Status.WAITING],
    [Status.IN_CONSULTATION, Status.COMPLETED, Status.CANCELLED],
])
def test_illegal_transitions_have_no_side_effects(doctor, patient, path):
    appt = _register(doctor, patient)
    *legal, illegal = path
    for s in legal:
        svc.update_status(appt.id, s)
    before = Appointment.objects.get(pk=appt.id)
    event_count = AppointmentEvent.objects.filter(appointment=appt).count()

    with pytest.raises(InvalidTransition):
        svc.update_status(appt.id, illegal)

    after = Appointment.objects.get(pk=appt.id)
    assert (after.status, after.queue_position, after.entry_time, after.exit_time) == \
        (before.status, before.queue_position, before.entry_time, before.exit_time)
    assert AppointmentEvent.objects.filter(appointment=appt).count() == event_count


def test_cancel_from_consultation_is_allowed(doctor, patient):
    appt = _register(doctor, patient)
    svc.update_status(appt.id, Status.IN_CONSULTATION)
    appt = svc.update_status(appt.id, Status.CANCELLED)
    assert appt.status == Status.CANCELLED
    assert events.has_event(appt, EventType.APPOINTMENT_CANCELLED)


def test_cancelling_middle_of_queue_compacts_positions(doctor, make_patient):
    a, b, c = (_register(doctor, make_patient()) for _ in range(3))

    svc.update_status(b.id, Status.CANCELLED)

    assert _positions(doctor) == [(a.serial_number, 1), (c.serial_number, 2)]
    b.refresh_from_db()
    assert b.serial_number == 2


def test_completing_compacts_and_new_patient_joins_at_end(doctor, make_patient):
    a, b, c = (_register(doctor, make_patient()) for _ in range(3))
    svc.update_status(a.id, Status.IN_CONSULTATION)
    svc.update_status(a.id, Status.COMPLETED)

    d = _register(doctor, make_patient())

    assert (d.serial_number, d.queue_position) == (4, 3)
    assert _positions(doctor) == [(2, 1), (3, 2), (4, 3)]


def test_call_next_with_empty_queue(doctor, make_patient):
    done = _register(doctor, make_patient())
    svc.update_status(done.id, Status.CANCELLED)
    event_count = AppointmentEvent.objects.count()

    with pytest.raises(NoPatientsWaiting):
        svc.call_next(doctor.id)

    assert AppointmentEvent.objects.count() == event_count
    assert not Appointment.objects.filter(status=Status.IN_CONSULTATION).exists()


def test_call_next_takes_lowest_waiting_position(doctor, make_patient, reception):
    first, second = _register(doctor, make_patient()), _register(doctor, make_patient())

    called = svc.call_next(doctor.id, performed_by=reception)

    assert called.id == first.id
    assert called.status == Status.IN_CONSULTATION
    kinds = [e.event_type for e in events.timeline(called)][3:]
    assert kinds == [EventType.QUEUE_CALLED, EventType.ENTERED_ROOM]

    assert svc.call_next(doctor.id).id == second.id
    with pytest.raises(NoPatientsWaiting):
        svc.call_next(doctor.id)


def test_call_next_unknown_doctor():
    with pytest.raises(DoctorNotFound):
        svc.call_next(424242)


def test_update_details_leaves_queue_and_bill_alone(doctor, patient):
    appt = _register(doctor, patient)
    updated = svc.update_details(appt.id, diagnosis='Viral fever')
    assert updated.diagnosis == 'Viral fever'
    assert (updated.status, updated.serial_number, updated.queue_position) == (Status.WAITING, 1, 1)
    assert updated.bill.total_amount == Decimal('600.00')


def test_appointments_cannot_be_deleted(doctor, patient):
    appt = _register(doctor, patient)
    with pytest.raises(ImmutableRecordError):
        appt.delete()
    assert Appointment.objects.filter(pk=appt.pk).exists()


def test_list_appointments_filters_and_paginates(make_doctor, make_patient):
    d1, d2 = make_doctor(), make_doctor()
    for _ in range(3):
        _register(d1, make_patient())
    _register(d2, make_patient())

    data, total = svc.list_appointments(doctor_id=d1.id, page=1, limit=2)
    assert total == 3
    assert [a['serialNumber'] for a in data] == [1, 2]
    data, _ = svc.list_appointments(doctor_id=d1.id, page=2, limit=2)
    assert [a['serialNumber'] for a in data] == [3]


def _register_concurrently(doctor, patients):
    results, errors = [], []
    barrier = threading.Barrier(len(patients))
    recorder = RecordingBroadcaster()

    def worker(p):
        try:
            barrier.wait()
            appt = svc.create_appointment(patient_id=p.id, doctor_id=doctor.id, broadcaster=recorder)
            results.append((appt.serial_number, appt.queue_position))
        except Exception as exc:
            errors.append(exc)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker, args=(p,)) for p in patients]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


@pytest.mark.django_db(transaction=True)
def test_concurrent_registrations_stay_contiguous(doctor, make_patient):
    patients = [make_patient() for _ in range(6)]

    results, errors = _register_concurrently(doctor, patients)

    # Losers give up cleanly; nobody gets a duplicate or a gap.
    assert all(isinstance(e, SequenceContention) for e in errors), errors
    assert results
    assert len(results) + len(errors) == len(patients)
    rows = sorted(
        Appointment.objects.filter(doctor=doctor).values_list('serial_number', 'queue_position')
    )
    k = len(results)
    assert rows == [(n, n) for n in range(1, k + 1)]
    assert sorted(results) == rows
    assert Bill.objects.filter(appointment__doctor=doctor).count() == k


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(connection.vendor == 'sqlite', reason='needs real row locks')
def test_concurrent_registrations_all_succeed_with_row_locks(doctor, make_patient):
    patients = [make_patient() for _ in range(6)]

    results, errors = _register_concurrently(doctor, patients)

    assert errors == []
    assert sorted(s for s, _ in results) == list(range(1, 7))
    assert sorted(p for _, p in results) == list(range(1, 7))
