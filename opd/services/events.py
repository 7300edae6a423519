"""
Append-only appointment event log.

Events are written by the lifecycle, billing, payment and prescription
services as part of their own transactions and are never edited
afterwards.  Reads reconstruct a chronological journey per appointment
and derive durations between named milestones.
"""
from __future__ import annotations

import json
import math
from typing import Any, Iterable, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils import timezone

from ..exceptions import DomainValidationError
from ..models import Appointment, AppointmentEvent, EventType, User

# (name, start event, end event)
JOURNEY_DURATIONS = (
    ('waitMinutes', EventType.QUEUE_JOINED, EventType.ENTERED_ROOM),
    ('consultationMinutes', EventType.ENTERED_ROOM, EventType.EXITED_ROOM),
    ('totalMinutes', EventType.APPOINTMENT_REGISTERED, EventType.APPOINTMENT_COMPLETED),
)


def _appointment_id(appointment) -> int:
    return appointment.pk if isinstance(appointment, Appointment) else int(appointment)


def _normalise_metadata(metadata: Optional[dict]) -> Optional[dict]:
    # Store exactly what a later read will return (Decimals and dates as strings).
    if metadata is None:
        return None
    return json.loads(json.dumps(metadata, cls=DjangoJSONEncoder))


def describe(event_type: str) -> str:
    return EventType(event_type).label


def append(
    appointment,
    event_type: str,
    *,
    performed_by: Optional[User] = None,
    description: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    performed_at=None,
) -> AppointmentEvent:
    if event_type not in EventType.values:
        raise DomainValidationError(f'Unknown event type: {event_type}')
    return AppointmentEvent.objects.create(
        appointment_id=_appointment_id(appointment),
        event_type=event_type,
        performed_by=performed_by if performed_by and performed_by.is_authenticated else None,
        description=description or describe(event_type),
        metadata=_normalise_metadata(metadata),
        performed_at=performed_at or timezone.now(),
    )


@transaction.atomic
def append_many(appointment, entries: Iterable[dict[str, Any]], *, performed_by: Optional[User] = None) -> list[AppointmentEvent]:
    """Append several events as one unit.

    ``entries`` are dicts with ``event_type`` and optionally ``description``
    and ``metadata``.  Either every event is written or none is.
    """
    now = timezone.now()
    return [
        append(
            appointment,
            entry['event_type'],
            performed_by=entry.get('performed_by', performed_by),
            description=entry.get('description'),
            metadata=entry.get('metadata'),
            performed_at=now,
        )
        for entry in entries
    ]


def timeline(appointment) -> list[AppointmentEvent]:
    return list(
        AppointmentEvent.objects.filter(appointment_id=_appointment_id(appointment))
        .select_related('performed_by')
        .order_by('performed_at', 'id')
    )


def latest(appointment, event_type: str) -> Optional[AppointmentEvent]:
    return (
        AppointmentEvent.objects.filter(appointment_id=_appointment_id(appointment), event_type=event_type)
        .order_by('-performed_at', '-id')
        .first()
    )


def has_event(appointment, event_type: str) -> bool:
    return AppointmentEvent.objects.filter(appointment_id=_appointment_id(appointment), event_type=event_type).exists()


def duration_between(appointment, start_type: str, end_type: str) -> Optional[int]:
    """Whole minutes between the latest ``start_type`` and latest ``end_type``.

    Halves round up.  ``None`` when either event has not happened.
    """
    start = latest(appointment, start_type)
    end = latest(appointment, end_type)
    if start is None or end is None:
        return None
    seconds = (end.performed_at - start.performed_at).total_seconds()
    return math.floor(seconds / 60 + 0.5)


def _performer_name(user: Optional[User]) -> str:
    if user is None:
        return 'System'
    return user.get_full_name() or user.username


def format_event(ev: AppointmentEvent) -> dict:
    return {
        'id': ev.id,
        'eventType': ev.event_type,
        'description': ev.description or describe(ev.event_type),
        'performedBy': ev.performed_by_id,
        'performedByName': _performer_name(ev.performed_by),
        'performedAt': ev.performed_at.isoformat(),
        'metadata': ev.metadata,
    }


def journey(appointment) -> dict:
    appt_id = _appointment_id(appointment)
    return {
        'appointmentId': appt_id,
        'events': [format_event(ev) for ev in timeline(appt_id)],
        'durations': {
            name: duration_between(appt_id, start, end) for name, start, end in JOURNEY_DURATIONS
        },
    }
