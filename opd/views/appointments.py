"""
Appointment endpoints: registration, lifecycle transitions and reads.

Handlers validate input with the serializers in ``opd.serializers`` and
hand over to ``opd.services.appointments``.  Domain errors raised by the
services are rendered by ``opd.exceptions.api_exception_handler``.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsStaffRole
from ..serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentStatusSerializer,
    AppointmentUpdateSerializer,
    AppointmentWithNewPatientSerializer,
    CallNextSerializer,
)
from ..serializers.patients import patient_fields
from ..services import appointments as svc
from ..services import events
from ..services.billing import format_bill
from ..models import Bill


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointments(request):
    if request.method == 'POST':
        return _create(request)
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    d = q.validated_data
    data, total = svc.list_appointments(
        patient_id=d.get('patientId'),
        doctor_id=d.get('doctorId'),
        status=d.get('status'),
        date=d.get('date'),
        page=d['page'],
        limit=d['limit'],
    )
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': d['page'], 'limit': d['limit']}})


def _create(request):
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    appt = svc.create_appointment(
        patient_id=d['patientId'],
        doctor_id=d['doctorId'],
        appointment_type=d['appointmentType'],
        chief_complaint=d.get('chiefComplaint', ''),
        initiated_by=request.user,
    )
    appt = svc.get_appointment(appt.pk)
    return Response({'ok': True, 'data': svc.format_appointment(appt, with_bill=True)}, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_with_new_patient(request):
    s = AppointmentWithNewPatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    appt = svc.create_appointment_with_new_patient(
        doctor_id=d['doctorId'],
        patient=patient_fields(d['patient']),
        appointment_type=d['appointmentType'],
        chief_complaint=d.get('chiefComplaint', ''),
        initiated_by=request.user,
    )
    appt = svc.get_appointment(appt.pk)
    return Response({'ok': True, 'data': svc.format_appointment(appt, with_bill=True)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_detail(request, pk: int):
    if request.method == 'PATCH':
        s = AppointmentUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        appt = svc.update_details(
            pk,
            chief_complaint=s.validated_data.get('chiefComplaint'),
            diagnosis=s.validated_data.get('diagnosis'),
        )
    else:
        appt = svc.get_appointment(pk)
    return Response({'ok': True, 'data': svc.format_appointment(appt, with_bill=True)})


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_status(request, pk: int):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = svc.update_status(pk, s.validated_data['status'], performed_by=request.user)
    return Response({'ok': True, 'data': svc.format_appointment(appt)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def call_next(request):
    s = CallNextSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = svc.call_next(s.validated_data['doctorId'], performed_by=request.user)
    return Response({'ok': True, 'data': svc.format_appointment(appt)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_bills(request, pk: int):
    svc.get_appointment(pk)
    bills = Bill.objects.filter(appointment_id=pk).order_by('id')
    return Response({'ok': True, 'data': [format_bill(b, with_payments=True) for b in bills]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_timeline(request, pk: int):
    svc.get_appointment(pk)
    return Response({'ok': True, 'data': events.journey(pk)})
