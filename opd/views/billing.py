"""Bills and payments."""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsAdminRole, IsStaffRole
from ..serializers.billing import BillItemCreateSerializer, BillStatusSerializer, PaymentCreateSerializer
from ..services import billing
from ..services.payments import record_payment_once


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def payments(request):
    """Record a payment.

    An ``Idempotency-Key`` header makes resubmission safe: the first
    result is replayed with ``Idempotent-Replayed: true``.
    """
    s = PaymentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    result, replayed = record_payment_once(
        request.headers.get('Idempotency-Key'),
        performed_by=request.user,
        bill_id=d['billId'],
        amount=d['amount'],
        method=d['paymentMethod'],
        transaction_id=d.get('transactionId'),
        notes=d.get('notes', ''),
    )
    resp = Response({'ok': True, 'data': result},
                    status=status.HTTP_200_OK if replayed else status.HTTP_201_CREATED)
    if replayed:
        resp['Idempotent-Replayed'] = 'true'
    return resp


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def bill_detail(request, pk: int):
    bill = billing.get_bill(pk)
    return Response({'ok': True, 'data': billing.format_bill(bill, with_payments=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def bill_items(request, pk: int):
    s = BillItemCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    bill, item = billing.add_bill_item(
        pk,
        item_type=d['itemType'],
        item_name=d['itemName'],
        unit_price=d['unitPrice'],
        quantity=d['quantity'],
        discount=d['discount'],
        performed_by=request.user,
    )
    return Response({'ok': True, 'data': {'item': billing.format_bill_item(item), 'bill': billing.format_bill(bill)}},
                    status=status.HTTP_201_CREATED)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsAdminRole])
def bill_status(request, pk: int):
    s = BillStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    bill = billing.set_bill_status(pk, s.validated_data['status'], performed_by=request.user,
                                   notes=s.validated_data.get('notes', ''))
    return Response({'ok': True, 'data': billing.format_bill(bill, with_payments=True)})
