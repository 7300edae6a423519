from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..exceptions import NotFound
from ..permissions import IsDoctorRole, IsStaffRole
from ..serializers.prescriptions import PrescriptionCreateSerializer
from ..services import prescriptions as svc
from ..services.appointments import get_appointment


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def prescriptions(request):
    s = PrescriptionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    p = svc.create_prescription(
        appointment_id=s.validated_data['appointmentId'],
        items=s.items_for_service(),
        notes=s.validated_data.get('notes', ''),
        follow_up_date=s.validated_data.get('followUpDate'),
        performed_by=request.user,
    )
    p = svc.get_for_appointment(p.appointment_id)
    return Response({'ok': True, 'data': svc.format_prescription(p)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_prescription(request, pk: int):
    get_appointment(pk)
    p = svc.get_for_appointment(pk)
    if p is None:
        raise NotFound('No prescription for this appointment')
    return Response({'ok': True, 'data': svc.format_prescription(p)})
