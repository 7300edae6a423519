"""Prescriptions: at most one per appointment, written during consultation."""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from django.db import transaction

from ..exceptions import AppointmentNotFound, DomainValidationError, NotFound, PrescriptionExists
from ..models import Appointment, EventType, Medicine, MedicineInstruction, Prescription, PrescriptionItem, User
from . import events

logger = logging.getLogger(__name__)


@transaction.atomic
def create_prescription(
    *,
    appointment_id: int,
    items: Iterable[dict],
    notes: str = '',
    follow_up_date: Optional[date] = None,
    performed_by: Optional[User] = None,
) -> Prescription:
    try:
        appt = Appointment.objects.select_for_update().get(pk=appointment_id)
    except Appointment.DoesNotExist:
        raise AppointmentNotFound()
    if Prescription.objects.filter(appointment_id=appt.pk).exists():
        raise PrescriptionExists()
    if appt.status != Appointment.Status.IN_CONSULTATION:
        raise DomainValidationError('Prescriptions can only be written during consultation')

    items = list(items)
    if not items:
        raise DomainValidationError('A prescription needs at least one item')
    medicines = Medicine.objects.in_bulk({i['medicine_id'] for i in items})
    instruction_ids = {i['instruction_id'] for i in items if i.get('instruction_id')}
    instructions = MedicineInstruction.objects.in_bulk(instruction_ids)
    for i in items:
        if i['medicine_id'] not in medicines:
            raise NotFound(f"Medicine {i['medicine_id']} not found")
        if i.get('instruction_id') and i['instruction_id'] not in instructions:
            raise NotFound(f"Instruction {i['instruction_id']} not found")

    actor = performed_by if performed_by is not None and performed_by.is_authenticated else None
    prescription = Prescription.objects.create(
        appointment=appt, doctor_id=appt.doctor_id, notes=notes or '',
        follow_up_date=follow_up_date, created_by=actor,
    )
    PrescriptionItem.objects.bulk_create([
        PrescriptionItem(
            prescription=prescription,
            medicine_id=i['medicine_id'],
            instruction_id=i.get('instruction_id'),
            duration=i.get('duration') or '',
            notes=i.get('notes') or '',
            position=n,
        )
        for n, i in enumerate(items, start=1)
    ])

    logged = [{'event_type': EventType.PRESCRIPTION_GIVEN,
               'metadata': {'prescriptionId': prescription.id, 'itemCount': len(items)}}]
    if follow_up_date:
        logged.append({'event_type': EventType.FOLLOWUP_SCHEDULED,
                       'metadata': {'followUpDate': follow_up_date.isoformat()}})
    events.append_many(appt, logged, performed_by=actor)
    logger.info('Prescription %s written for appointment %s', prescription.id, appt.id)
    return prescription


def get_for_appointment(appointment_id: int) -> Optional[Prescription]:
    return (
        Prescription.objects.filter(appointment_id=appointment_id)
        .select_related('doctor__user')
        .prefetch_related('items__medicine', 'items__instruction')
        .first()
    )


def format_prescription(p: Prescription) -> dict:
    return {
        'id': p.id,
        'appointmentId': p.appointment_id,
        'doctor': {'id': p.doctor_id, 'name': p.doctor.name},
        'notes': p.notes or None,
        'followUpDate': p.follow_up_date.isoformat() if p.follow_up_date else None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'items': [
            {
                'id': it.id,
                'position': it.position,
                'medicine': {'id': it.medicine_id, 'name': str(it.medicine)},
                'instruction': it.instruction.name if it.instruction_id else None,
                'duration': it.duration or None,
                'notes': it.notes or None,
            }
            for it in p.items.all()
        ],
    }
