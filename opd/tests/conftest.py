"""
Shared fixtures for the outpatient tests.

Queue broadcasts run synchronously and allocation retries do not sleep,
so tests are deterministic.  Each test gets a fresh broadcaster so the
in-process connection registry never leaks between tests.
"""
import itertools
from decimal import Decimal

import pytest
from django.apps import apps
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from opd.models import Appointment, Doctor, Patient, User
from opd.realtime.broadcaster import ConnectionRegistry, QueueBroadcaster

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _quiet_settings(settings, monkeypatch):
    settings.QUEUE_BROADCAST_BACKGROUND = False
    monkeypatch.setattr(apps.get_app_config('opd').broadcaster, 'background', False)
    settings.SEQUENCE_MAX_ATTEMPTS = 5
    settings.SEQUENCE_RETRY_BACKOFF = 0
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def broadcaster():
    config = apps.get_app_config('opd')
    original = config.broadcaster
    fresh = QueueBroadcaster(ConnectionRegistry(max_per_resource=2, timeout=60), background=False)
    config.broadcaster = fresh
    yield fresh
    fresh.stop_sweeper()
    config.broadcaster = original


@pytest.fixture
def reception(db):
    return User.objects.create_user(username='desk1', password='P@ssw0rd1', role=User.ROLE_RECEPTION,
                                    first_name='Front', last_name='Desk')


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='manager', password='P@ssw0rd1', role=User.ROLE_ADMIN)


@pytest.fixture
def make_doctor(db):
    def _make(fee='500', hospital_fee='100', **extra):
        n = next(_seq)
        user = User.objects.create_user(username=f'doctor{n}', password='P@ssw0rd1', role=User.ROLE_DOCTOR,
                                        first_name='Nasrin', last_name=f'Akter{n}')
        return Doctor.objects.create(user=user, consultation_fee=Decimal(fee), hospital_fee=Decimal(hospital_fee), **extra)
    return _make


@pytest.fixture
def doctor(make_doctor):
    return make_doctor()


@pytest.fixture
def make_patient(db):
    def _make(**extra):
        n = next(_seq)
        fields = {'patient_id': f'TEST-{n:05d}', 'name': f'Patient {n}', 'phone': f'0170000{n:04d}', 'age': 30}
        fields.update(extra)
        return Patient.objects.create(**fields)
    return _make


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def make_appointment(db):
    """Insert an appointment row directly, bypassing allocation."""
    def _make(doctor, patient, serial, position=None, status=Appointment.Status.WAITING, day=None):
        day = day or timezone.localdate()
        return Appointment.objects.create(
            doctor=doctor, patient=patient, serial_number=serial,
            queue_position=position if position is not None else serial,
            status=status, appointment_date=day, appointment_month=day.strftime('%Y-%m'),
        )
    return _make


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def desk_client(reception):
    client = APIClient()
    client.force_authenticate(user=reception)
    return client
