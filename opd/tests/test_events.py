from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from opd.exceptions import DomainValidationError, ImmutableRecordError
from opd.models import AppointmentEvent, EventType
from opd.services import events

pytestmark = pytest.mark.django_db


@pytest.fixture
def appt(doctor, patient, make_appointment):
    return make_appointment(doctor, patient, serial=1)


def test_append_uses_default_description(appt):
    ev = events.append(appt, EventType.QUEUE_JOINED)
    assert ev.description == 'Patient joined the queue'
    assert ev.performed_by is None


def test_every_event_kind_has_a_description():
    assert len(EventType.values) == 30
    assert all(events.describe(v) for v in EventType.values)


def test_unknown_event_type_is_rejected(appt):
    with pytest.raises(DomainValidationError):
        events.append(appt, 'VISIT_STARTED')


def test_metadata_round_trips(appt):
    meta = {'billNumber': 'B-2026-0001', 'amount': Decimal('600.00'), 'lines': [{'n': 1}, {'n': 2}], 'ok': True}
    events.append(appt, EventType.CONSULTATION_BILLED, metadata=meta)
    stored = AppointmentEvent.objects.get(appointment=appt).metadata
    assert stored == {'billNumber': 'B-2026-0001', 'amount': '600.00', 'lines': [{'n': 1}, {'n': 2}], 'ok': True}


def test_timeline_is_ordered_by_time_not_insertion(appt):
    now = timezone.now()
    events.append(appt, EventType.ENTERED_ROOM, performed_at=now)
    events.append(appt, EventType.APPOINTMENT_REGISTERED, performed_at=now - timedelta(minutes=10))
    events.append(appt, EventType.QUEUE_JOINED, performed_at=now - timedelta(minutes=10))

    kinds = [e.event_type for e in events.timeline(appt)]
    assert kinds == [EventType.APPOINTMENT_REGISTERED, EventType.QUEUE_JOINED, EventType.ENTERED_ROOM]


def test_latest_and_has_event(appt):
    now = timezone.now()
    events.append(appt, EventType.QUEUE_CALLED, performed_at=now - timedelta(minutes=5), metadata={'n': 1})
    events.append(appt, EventType.QUEUE_CALLED, performed_at=now, metadata={'n': 2})
    assert events.latest(appt, EventType.QUEUE_CALLED).metadata == {'n': 2}
    assert events.latest(appt, EventType.EXITED_ROOM) is None
    assert events.has_event(appt, EventType.QUEUE_CALLED)
    assert not events.has_event(appt.id, EventType.EXITED_ROOM)


@pytest.mark.parametrize('seconds, minutes', [(0, 0), (89, 1), (90, 2), (150, 3), (3600, 60)])
def test_duration_between_rounds_to_whole_minutes(appt, seconds, minutes):
    start = timezone.now()
    events.append(appt, EventType.ENTERED_ROOM, performed_at=start)
    events.append(appt, EventType.EXITED_ROOM, performed_at=start + timedelta(seconds=seconds))
    assert events.duration_between(appt, EventType.ENTERED_ROOM, EventType.EXITED_ROOM) == minutes


def test_duration_between_missing_event_is_none(appt):
    events.append(appt, EventType.ENTERED_ROOM)
    assert events.duration_between(appt, EventType.ENTERED_ROOM, EventType.EXITED_ROOM) is None


def test_append_many_is_all_or_nothing(appt):
    with pytest.raises(DomainValidationError):
        events.append_many(appt, [
            {'event_type': EventType.APPOINTMENT_REGISTERED},
            {'event_type': 'NOT_A_KIND'},
        ])
    assert AppointmentEvent.objects.filter(appointment=appt).count() == 0


def test_events_cannot_be_changed_or_removed(appt):
    ev = events.append(appt, EventType.QUEUE_JOINED)
    ev.description = 'edited'
    with pytest.raises(ImmutableRecordError):
        ev.save()
    with pytest.raises(ImmutableRecordError):
        ev.delete()
    with pytest.raises(ImmutableRecordError):
        AppointmentEvent.objects.filter(pk=ev.pk).update(description='edited')
    with pytest.raises(ImmutableRecordError):
        AppointmentEvent.objects.filter(pk=ev.pk).delete()
    ev.refresh_from_db()
    assert ev.description == 'Patient joined the queue'


def test_journey_names_performers_and_durations(appt, reception):
    t0 = timezone.now() - timedelta(minutes=30)
    events.append(appt, EventType.APPOINTMENT_REGISTERED, performed_at=t0, performed_by=reception)
    events.append(appt, EventType.QUEUE_JOINED, performed_at=t0)
    events.append(appt, EventType.ENTERED_ROOM, performed_at=t0 + timedelta(minutes=12))
    events.append(appt, EventType.EXITED_ROOM, performed_at=t0 + timedelta(minutes=20))

    data = events.journey(appt)

    assert [e['performedByName'] for e in data['events']] == ['Front Desk', 'System', 'System', 'System']
    assert data['durations'] == {'waitMinutes': 12, 'consultationMinutes': 8, 'totalMinutes': None}
