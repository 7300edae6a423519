from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..apps import get_broadcaster
from ..permissions import IsAdminRole, IsStaffRole
from ..services.appointments import get_doctor
from ..services.queue import queue_snapshot


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def doctor_queue(request, doctor_id: int):
    """Current active queue for the doctor; same shape as the live feed."""
    get_doctor(doctor_id)
    return Response({'ok': True, 'data': queue_snapshot(doctor_id)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def queue_connections(request):
    """Live viewer connections held by this process."""
    return Response({'ok': True, 'data': get_broadcaster().stats()})
