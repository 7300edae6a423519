"""
Appointment lifecycle: registration, status transitions and call-next.

Every mutation runs in one transaction that holds the doctor-day lock from
:mod:`opd.services.sequences`.  Appointment, bill, bill items and journey
events are written together or not at all.  The live queue is notified
only once the transaction has committed; a failed push never affects the
write.

State machine::

    WAITING -> IN_CONSULTATION -> COMPLETED
       |              |
       +--> CANCELLED <+
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from django.db import transaction
from django.utils import timezone

from ..apps import get_broadcaster
from ..exceptions import AppointmentNotFound, DoctorNotFound, DomainValidationError, InvalidTransition, NoPatientsWaiting
from ..metrics import APPOINTMENTS_CREATED
from ..models import Appointment, Doctor, EventType, Patient, User
from . import events
from .billing import create_bill_for_appointment, format_bill, money
from .patients import create_patient_locked, format_patient, get_patient
from .sequences import compact_queue_positions, lock_doctor_day, next_queue_position, next_serial_number, run_atomic_with_retry

logger = logging.getLogger(__name__)

Status = Appointment.Status


def _actor(user: Optional[User]) -> Optional[User]:
    return user if user is not None and user.is_authenticated else None


def _notify_on_commit(doctor_id: int, broadcaster=None) -> None:
    broadcaster = broadcaster or get_broadcaster()
    if broadcaster is not None:
        transaction.on_commit(partial(broadcaster.notify, doctor_id))


def get_doctor(doctor_id: int) -> Doctor:
    try:
        return Doctor.objects.select_related('user').get(pk=doctor_id)
    except Doctor.DoesNotExist:
        raise DoctorNotFound()


def get_appointment(appointment_id: int) -> Appointment:
    try:
        return Appointment.objects.select_related('patient', 'doctor__user').get(pk=appointment_id)
    except Appointment.DoesNotExist:
        raise AppointmentNotFound()


# -- creation ----------------------------------------------------------------

def _register(
    doctor: Doctor,
    *,
    patient: Optional[Patient] = None,
    new_patient: Optional[dict] = None,
    appointment_type: str = Appointment.Type.NEW,
    chief_complaint: str = '',
    initiated_by: Optional[User] = None,
    broadcaster=None,
) -> Appointment:
    day = timezone.localdate()
    actor = _actor(initiated_by)

    serial = next_serial_number(doctor.id, day)
    position = next_queue_position(doctor.id, day)
    if new_patient is not None:
        patient = create_patient_locked(created_by=actor, **new_patient)

    appt = Appointment.objects.create(
        patient=patient,
        doctor=doctor,
        initiated_by=actor,
        appointment_type=appointment_type,
        status=Status.WAITING,
        serial_number=serial,
        queue_position=position,
        appointment_date=day,
        appointment_month=day.strftime('%Y-%m'),
        chief_complaint=chief_complaint or '',
    )
    bill = create_bill_for_appointment(appt, doctor, initiated_by=actor)
    events.append_many(appt, [
        {'event_type': EventType.APPOINTMENT_REGISTERED,
         'metadata': {'serialNumber': serial, 'appointmentType': appointment_type, 'doctorId': doctor.id}},
        {'event_type': EventType.QUEUE_JOINED, 'metadata': {'queuePosition': position}},
        {'event_type': EventType.CONSULTATION_BILLED,
         'metadata': {'billNumber': bill.bill_number, 'amount': money(bill.total_amount)}},
    ], performed_by=actor)

    _notify_on_commit(doctor.id, broadcaster)
    logger.info('Appointment %s registered: doctor=%s serial=%s position=%s bill=%s',
                appt.id, doctor.id, serial, position, bill.bill_number)
    return appt


def create_appointment(
    *,
    patient_id: int,
    doctor_id: int,
    appointment_type: str = Appointment.Type.NEW,
    chief_complaint: str = '',
    initiated_by: Optional[User] = None,
    broadcaster=None,
) -> Appointment:
    """Register an existing patient in the doctor's queue for today."""
    doctor = get_doctor(doctor_id)
    patient = get_patient(patient_id)
    appt = run_atomic_with_retry(
        _register, doctor,
        patient=patient, appointment_type=appointment_type, chief_complaint=chief_complaint,
        initiated_by=initiated_by, broadcaster=broadcaster, label='appointment registration',
    )
    APPOINTMENTS_CREATED.labels(appointment_type).inc()
    return appt


def create_appointment_with_new_patient(
    *,
    doctor_id: int,
    patient: dict,
    appointment_type: str = Appointment.Type.NEW,
    chief_complaint: str = '',
    initiated_by: Optional[User] = None,
    broadcaster=None,
) -> Appointment:
    """Register a new patient and their first appointment in one transaction.

    ``patient`` holds ``phone`` and the profile fields; a phone that is
    already on file fails with :class:`~opd.exceptions.DuplicatePhone`.
    """
    doctor = get_doctor(doctor_id)
    appt = run_atomic_with_retry(
        _register, doctor,
        new_patient=dict(patient), appointment_type=appointment_type, chief_complaint=chief_complaint,
        initiated_by=initiated_by, broadcaster=broadcaster, label='appointment registration',
    )
    APPOINTMENTS_CREATED.labels(appointment_type).inc()
    return appt


# -- transitions -------------------------------------------------------------

def _transition(appt: Appointment, new_status: str, actor: Optional[User], *, preceding: tuple = ()) -> Appointment:
    """Apply one transition to a locked appointment."""
    if not appt.can_transition_to(new_status):
        raise InvalidTransition(f'Cannot change status from {appt.status} to {new_status}')

    old_status = appt.status
    now = timezone.now()
    change = {'fromStatus': old_status, 'toStatus': new_status}
    entries = list(preceding)
    fields = ['status', 'updated_at']

    appt.status = new_status
    if new_status == Status.IN_CONSULTATION:
        appt.entry_time = now
        fields.append('entry_time')
        entries.append({'event_type': EventType.ENTERED_ROOM, 'metadata': change})
    elif new_status == Status.COMPLETED:
        appt.exit_time = now
        fields.append('exit_time')
        entries.append({'event_type': EventType.EXITED_ROOM, 'metadata': change})
        entries.append({'event_type': EventType.APPOINTMENT_COMPLETED, 'metadata': change})
    elif new_status == Status.CANCELLED:
        entries.append({'event_type': EventType.APPOINTMENT_CANCELLED, 'metadata': change})
    appt.save(update_fields=fields)

    if new_status in Appointment.TERMINAL_STATUSES:
        compact_queue_positions(appt.doctor_id, appt.appointment_date)

    events.append_many(appt, entries, performed_by=actor)
    logger.info('Appointment %s: %s -> %s', appt.id, old_status, new_status)
    return appt


def update_status(appointment_id: int, new_status: str, *, performed_by: Optional[User] = None, broadcaster=None) -> Appointment:
    if new_status not in Status.values:
        raise DomainValidationError(f'Unknown status: {new_status}')
    actor = _actor(performed_by)

    def work() -> Appointment:
        current = get_appointment(appointment_id)
        lock_doctor_day(current.doctor_id, current.appointment_date)
        appt = Appointment.objects.select_for_update().get(pk=appointment_id)
        _transition(appt, new_status, actor)
        _notify_on_commit(appt.doctor_id, broadcaster)
        return appt

    run_atomic_with_retry(work, label='status update')
    return get_appointment(appointment_id)


def call_next(doctor_id: int, *, performed_by: Optional[User] = None, broadcaster=None) -> Appointment:
    """Move the lowest-positioned WAITING appointment of today into consultation."""
    get_doctor(doctor_id)
    actor = _actor(performed_by)

    def work() -> Appointment:
        day = timezone.localdate()
        lock_doctor_day(doctor_id, day)
        appt = (
            Appointment.objects.select_for_update()
            .filter(doctor_id=doctor_id, appointment_date=day, status=Status.WAITING)
            .order_by('queue_position', 'serial_number')
            .first()
        )
        if appt is None:
            raise NoPatientsWaiting()
        called = {'event_type': EventType.QUEUE_CALLED,
                  'metadata': {'serialNumber': appt.serial_number, 'queuePosition': appt.queue_position}}
        _transition(appt, Status.IN_CONSULTATION, actor, preceding=(called,))
        _notify_on_commit(doctor_id, broadcaster)
        return appt

    appt = run_atomic_with_retry(work, label='call next')
    return get_appointment(appt.pk)


@transaction.atomic
def update_details(appointment_id: int, *, chief_complaint: Optional[str] = None, diagnosis: Optional[str] = None) -> Appointment:
    """Edit complaint/diagnosis; never touches status, queue or billing."""
    try:
        appt = Appointment.objects.select_for_update().get(pk=appointment_id)
    except Appointment.DoesNotExist:
        raise AppointmentNotFound()
    fields = ['updated_at']
    if chief_complaint is not None:
        appt.chief_complaint = chief_complaint
        fields.append('chief_complaint')
    if diagnosis is not None:
        appt.diagnosis = diagnosis
        fields.append('diagnosis')
    appt.save(update_fields=fields)
    return get_appointment(appointment_id)


# -- reads -------------------------------------------------------------------

def list_appointments(*, patient_id=None, doctor_id=None, status=None, date=None, page: int = 1, limit: int = 20):
    qs = Appointment.objects.select_related('patient', 'doctor__user')
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if status:
        qs = qs.filter(status=status)
    if date:
        qs = qs.filter(appointment_date=date)
    qs = qs.order_by('-appointment_date', 'doctor_id', 'serial_number')
    total = qs.count()
    start = (max(page, 1) - 1) * limit
    return [format_appointment(a) for a in qs[start:start + limit]], total


def format_appointment(a: Appointment, *, with_bill: bool = False) -> dict:
    data = {
        'id': a.id,
        'serialNumber': a.serial_number,
        'queuePosition': a.queue_position,
        'status': a.status,
        'appointmentType': a.appointment_type,
        'appointmentDate': a.appointment_date.isoformat(),
        'appointmentMonth': a.appointment_month,
        'chiefComplaint': a.chief_complaint or None,
        'diagnosis': a.diagnosis or None,
        'entryTime': a.entry_time.isoformat() if a.entry_time else None,
        'exitTime': a.exit_time.isoformat() if a.exit_time else None,
        'patient': format_patient(a.patient),
        'doctor': {'id': a.doctor_id, 'name': a.doctor.name},
        'initiatedBy': a.initiated_by_id,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }
    if with_bill:
        bill = getattr(a, 'bill', None)
        data['bill'] = format_bill(bill) if bill else None
    return data
