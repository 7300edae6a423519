"""Read side of a doctor's live queue."""
from __future__ import annotations

from datetime import date
from typing import Optional

from django.utils import timezone

from ..models import Appointment, Doctor


def doctor_exists(doctor_id: int) -> bool:
    return Doctor.objects.filter(pk=doctor_id).exists()


def active_queue(doctor_id: int, day: Optional[date] = None) -> list[Appointment]:
    """WAITING and IN_CONSULTATION appointments for the day, in queue order."""
    day = day or timezone.localdate()
    return list(
        Appointment.objects.filter(
            doctor_id=doctor_id, appointment_date=day, status__in=Appointment.ACTIVE_STATUSES,
        )
        .select_related('patient', 'doctor__user')
        .order_by('queue_position', 'serial_number')
    )


def format_queue_entry(a: Appointment) -> dict:
    # No phone or complaint here: the stream is readable by waiting-room screens.
    p = a.patient
    return {
        'id': a.id,
        'serialNumber': a.serial_number,
        'queuePosition': a.queue_position,
        'status': a.status,
        'appointmentType': a.appointment_type,
        'entryTime': a.entry_time.isoformat() if a.entry_time else None,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
        'patient': {
            'id': p.id,
            'patientId': p.patient_id,
            'name': p.name,
            'age': p.age,
            'gender': p.gender or None,
        },
        'doctorName': a.doctor.name,
    }


def queue_snapshot(doctor_id: int, day: Optional[date] = None) -> dict:
    """Full snapshot of the doctor's active queue, JSON ready."""
    return {
        'type': 'snapshot',
        'doctorId': doctor_id,
        'queue': [format_queue_entry(a) for a in active_queue(doctor_id, day)],
        'timestamp': timezone.now().isoformat(),
    }


def doctors_with_active_queue(day: Optional[date] = None) -> list[int]:
    day = day or timezone.localdate()
    return list(
        Appointment.objects.filter(appointment_date=day, status__in=Appointment.ACTIVE_STATUSES)
        .order_by('doctor_id')
        .values_list('doctor_id', flat=True)
        .distinct()
    )
