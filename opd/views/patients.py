from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsStaffRole
from ..serializers.patients import PatientCreateSerializer
from ..services.patients import format_patient, register_patient


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients(request):
    """Register a patient without booking an appointment."""
    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    p = register_patient(created_by=request.user, **s.to_patient_fields())
    return Response({'ok': True, 'data': format_patient(p)}, status=status.HTTP_201_CREATED)
