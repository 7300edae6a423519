"""
Bill generation and bill maintenance.

A bill is created in the same transaction as its appointment and is only
changed afterwards by payments, by adding service/test lines, or by an
explicit cancel/refund override.  ``total == paid + due`` holds after
every write (and is enforced by a database check constraint).
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction

from ..exceptions import BillNotFound, BillNotPayable, DomainValidationError, InvalidTransition
from ..models import Appointment, Bill, BillItem, Doctor, EventType, Payment, User
from . import events
from .sequences import next_bill_number

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0')


def money(value) -> str:
    return str(Decimal(value or 0).quantize(CENT))


def bill_status_for(total: Decimal, due: Decimal) -> str:
    if due == 0:
        return Bill.Status.PAID
    if due < total:
        return Bill.Status.PARTIAL
    return Bill.Status.PENDING


@transaction.atomic
def create_bill_for_appointment(appointment: Appointment, doctor: Doctor, *, initiated_by: Optional[User] = None) -> Bill:
    """Bill a freshly created appointment from the doctor's fee schedule.

    One consultation line, plus a hospital fee line when that fee is set.
    A bill with nothing to pay is created PAID.
    """
    consultation_fee = Decimal(doctor.consultation_fee or ZERO)
    hospital_fee = Decimal(doctor.hospital_fee or ZERO)
    total = consultation_fee + hospital_fee

    bill = Bill.objects.create(
        bill_number=next_bill_number(appointment.appointment_date),
        patient_id=appointment.patient_id,
        appointment=appointment,
        total_amount=total,
        paid_amount=ZERO,
        due_amount=total,
        status=bill_status_for(total, total),
        initiated_by=initiated_by,
    )
    BillItem.objects.create(
        bill=bill,
        item_type=BillItem.ItemType.CONSULTATION,
        item_name=f'Consultation - {doctor.name}',
        quantity=1,
        unit_price=consultation_fee,
    )
    if hospital_fee > 0:
        BillItem.objects.create(
            bill=bill,
            item_type=BillItem.ItemType.HOSPITAL_FEE,
            item_name='Hospital fee',
            quantity=1,
            unit_price=hospital_fee,
        )
    return bill


def get_bill(bill_id: int) -> Bill:
    try:
        return Bill.objects.select_related('appointment', 'patient').get(pk=bill_id)
    except Bill.DoesNotExist:
        raise BillNotFound()


def lock_bill(bill_id: int) -> Bill:
    try:
        return Bill.objects.select_for_update().get(pk=bill_id)
    except Bill.DoesNotExist:
        raise BillNotFound()


@transaction.atomic
def add_bill_item(
    bill_id: int,
    *,
    item_type: str,
    item_name: str,
    unit_price: Decimal,
    quantity: int = 1,
    discount: Decimal = ZERO,
    performed_by: Optional[User] = None,
) -> tuple[Bill, BillItem]:
    """Add a later service or test line; raises the bill's total and due."""
    bill = lock_bill(bill_id)
    if bill.status in (Bill.Status.CANCELLED, Bill.Status.REFUNDED):
        raise BillNotPayable('Cannot add items to a cancelled or refunded bill')
    if item_type not in (BillItem.ItemType.SERVICE, BillItem.ItemType.TEST):
        raise DomainValidationError('Only service or test items can be added to an existing bill')

    line_total = quantity * Decimal(unit_price) - Decimal(discount)
    if line_total < 0:
        raise DomainValidationError('Item discount exceeds its price')

    item = BillItem.objects.create(
        bill=bill, item_type=item_type, item_name=item_name,
        quantity=quantity, unit_price=unit_price, discount=discount,
    )
    bill.total_amount += item.total
    bill.due_amount += item.total
    bill.status = bill_status_for(bill.total_amount, bill.due_amount)
    bill.save(update_fields=['total_amount', 'due_amount', 'status', 'updated_at'])

    if item_type == BillItem.ItemType.TEST:
        events.append(
            bill.appointment_id, EventType.TESTS_BILLED, performed_by=performed_by,
            metadata={'billNumber': bill.bill_number, 'itemName': item_name, 'amount': money(item.total)},
        )
    logger.info('Bill %s: added %s item (%s)', bill.bill_number, item_type, money(item.total))
    return bill, item


@transaction.atomic
def set_bill_status(bill_id: int, new_status: str, *, performed_by: Optional[User] = None, notes: str = '') -> Bill:
    """Explicit override to CANCELLED (nothing paid) or REFUNDED (something paid)."""
    bill = lock_bill(bill_id)
    if bill.status in (Bill.Status.CANCELLED, Bill.Status.REFUNDED):
        raise InvalidTransition(f'Bill is already {bill.status}')

    if new_status == Bill.Status.CANCELLED:
        if bill.paid_amount > 0:
            raise InvalidTransition('A bill with payments cannot be cancelled; refund it instead')
    elif new_status == Bill.Status.REFUNDED:
        if bill.paid_amount <= 0:
            raise InvalidTransition('Nothing has been paid on this bill')
    else:
        raise InvalidTransition(f'Bill status cannot be set to {new_status}')

    bill.status = new_status
    fields = ['status', 'updated_at']
    if notes:
        bill.notes = notes
        fields.append('notes')
    bill.save(update_fields=fields)

    if new_status == Bill.Status.REFUNDED:
        events.append(
            bill.appointment_id, EventType.PAYMENT_REFUNDED, performed_by=performed_by,
            metadata={'billNumber': bill.bill_number, 'amount': money(bill.paid_amount)},
        )
    logger.info('Bill %s set to %s', bill.bill_number, new_status)
    return bill


def format_bill_item(item: BillItem) -> dict:
    return {
        'id': item.id,
        'itemType': item.item_type,
        'itemName': item.item_name,
        'quantity': item.quantity,
        'unitPrice': money(item.unit_price),
        'discount': money(item.discount),
        'total': money(item.total),
    }


def format_payment(payment: Payment) -> dict:
    return {
        'id': payment.id,
        'billId': payment.bill_id,
        'amount': money(payment.amount),
        'paymentMethod': payment.payment_method,
        'transactionId': payment.transaction_id or None,
        'status': payment.status,
        'receivedBy': payment.received_by_id,
        'paymentDate': payment.payment_date.isoformat(),
    }


def format_bill(bill: Bill, *, with_items: bool = True, with_payments: bool = False) -> dict:
    data = {
        'id': bill.id,
        'billNumber': bill.bill_number,
        'appointmentId': bill.appointment_id,
        'patientId': bill.patient_id,
        'totalAmount': money(bill.total_amount),
        'paidAmount': money(bill.paid_amount),
        'dueAmount': money(bill.due_amount),
        'discount': money(bill.discount),
        'status': bill.status,
        'billingDate': bill.billing_date.isoformat(),
    }
    if with_items:
        data['items'] = [format_bill_item(i) for i in bill.items.order_by('id')]
    if with_payments:
        data['payments'] = [format_payment(p) for p in bill.payments.order_by('payment_date', 'id')]
    return data
