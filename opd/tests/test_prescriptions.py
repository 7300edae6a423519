from datetime import timedelta

import pytest
from django.utils import timezone

from opd.exceptions import DomainValidationError, NotFound, PrescriptionExists
from opd.models import Appointment, EventType, Medicine, MedicineInstruction
from opd.services import events
from opd.services import prescriptions as svc
from opd.services.appointments import create_appointment, update_status

pytestmark = pytest.mark.django_db


@pytest.fixture
def catalog(db):
    return {
        'napa': Medicine.objects.create(name='Napa', strength='500 mg', form='Tablet'),
        'seclo': Medicine.objects.create(name='Seclo', strength='20 mg', form='Capsule'),
        'bd': MedicineInstruction.objects.create(name='1+0+1 after meal'),
    }


@pytest.fixture
def appt(doctor, patient):
    return create_appointment(patient_id=patient.id, doctor_id=doctor.id)


def _items(catalog):
    return [
        {'medicine_id': catalog['seclo'].id, 'instruction_id': catalog['bd'].id, 'duration': '14 days'},
        {'medicine_id': catalog['napa'].id, 'duration': '3 days', 'notes': 'if fever'},
    ]


def test_only_during_consultation(appt, catalog):
    with pytest.raises(DomainValidationError):
        svc.create_prescription(appointment_id=appt.id, items=_items(catalog))


def test_prescription_keeps_item_order_and_logs(appt, catalog, doctor):
    update_status(appt.id, Appointment.Status.IN_CONSULTATION)
    follow_up = timezone.localdate() + timedelta(days=14)

    p = svc.create_prescription(appointment_id=appt.id, items=_items(catalog), follow_up_date=follow_up,
                                performed_by=doctor.user)

    data = svc.format_prescription(svc.get_for_appointment(appt.id))
    assert [i['medicine']['name'] for i in data['items']] == ['Seclo 20 mg', 'Napa 500 mg']
    assert data['items'][0]['instruction'] == '1+0+1 after meal'
    assert data['followUpDate'] == follow_up.isoformat()
    assert p.doctor_id == doctor.id
    assert events.has_event(appt, EventType.PRESCRIPTION_GIVEN)
    assert events.latest(appt, EventType.FOLLOWUP_SCHEDULED).metadata == {'followUpDate': follow_up.isoformat()}


def test_at_most_one_per_appointment(appt, catalog):
    update_status(appt.id, Appointment.Status.IN_CONSULTATION)
    svc.create_prescription(appointment_id=appt.id, items=_items(catalog))
    with pytest.raises(PrescriptionExists):
        svc.create_prescription(appointment_id=appt.id, items=_items(catalog))


def test_unknown_medicine(appt, catalog):
    update_status(appt.id, Appointment.Status.IN_CONSULTATION)
    with pytest.raises(NotFound):
        svc.create_prescription(appointment_id=appt.id, items=[{'medicine_id': 987654}])
    assert svc.get_for_appointment(appt.id) is None
