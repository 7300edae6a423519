"""Patient registration and lookups."""
from __future__ import annotations

import logging
from typing import Optional

from django.utils import timezone

from ..exceptions import DuplicatePhone, PatientNotFound
from ..models import Patient, User
from .sequences import next_patient_code, run_atomic_with_retry

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('name', 'age', 'gender', 'blood_group', 'email', 'address', 'notes')


def get_patient(patient_id: int) -> Patient:
    try:
        return Patient.objects.get(pk=patient_id)
    except Patient.DoesNotExist:
        raise PatientNotFound()


def create_patient_locked(*, phone: str, created_by: Optional[User] = None, **profile) -> Patient:
    """Create a patient inside the caller's transaction.

    The phone check and the code allocation happen under the patient
    counter lock; a racing insert of the same phone still fails on the
    unique index and is retried by the caller.
    """
    code = next_patient_code(timezone.localdate())
    if Patient.objects.filter(phone=phone).exists():
        raise DuplicatePhone()
    fields = {k: v for k, v in profile.items() if k in PROFILE_FIELDS and v is not None}
    patient = Patient.objects.create(
        patient_id=code,
        phone=phone,
        created_by=created_by if created_by and created_by.is_authenticated else None,
        **fields,
    )
    logger.info('Registered patient %s', patient.patient_id)
    return patient


def register_patient(*, phone: str, created_by: Optional[User] = None, **profile) -> Patient:
    return run_atomic_with_retry(
        create_patient_locked, phone=phone, created_by=created_by, label='patient registration', **profile,
    )


def format_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'name': p.name,
        'age': p.age,
        'gender': p.gender or None,
        'phone': p.phone,
        'bloodGroup': p.blood_group or None,
        'email': p.email or None,
        'address': p.address or None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }
