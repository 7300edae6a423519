"""
Recording payments against bills.

The bill row is locked for the whole operation so two cashiers paying the
same bill at once are serialised; the second sees the first's amounts.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.core.cache import cache
from django.conf import settings
from django.db import transaction

from ..exceptions import AlreadyPaid, AmountExceedsDue, BillNotPayable, Conflict, DomainError, DomainValidationError
from ..metrics import PAYMENTS_RECORDED
from ..models import Bill, EventType, Payment, User
from . import events
from .billing import bill_status_for, format_bill, format_payment, lock_bill, money

logger = logging.getLogger(__name__)


def record_payment(
    *,
    bill_id: int,
    amount: Decimal,
    method: str,
    performed_by: Optional[User] = None,
    transaction_id: Optional[str] = None,
    notes: str = '',
) -> tuple[Payment, Bill]:
    """Apply one payment; returns the payment row and the updated bill.

    Rejected payments leave the bill untouched.
    """
    amount = Decimal(amount)
    if amount <= 0:
        raise DomainValidationError('Payment amount must be greater than zero')
    try:
        payment, bill = _apply(bill_id, amount, method, performed_by, transaction_id, notes)
    except DomainError as exc:
        PAYMENTS_RECORDED.labels(exc.default_code).inc()
        raise
    PAYMENTS_RECORDED.labels('success').inc()
    return payment, bill


@transaction.atomic
def _apply(bill_id, amount, method, performed_by, transaction_id, notes):
    bill = lock_bill(bill_id)
    if bill.status == Bill.Status.PAID:
        raise AlreadyPaid()
    if bill.status in (Bill.Status.CANCELLED, Bill.Status.REFUNDED):
        raise BillNotPayable()
    if amount > bill.due_amount:
        raise AmountExceedsDue(f'Payment amount exceeds due amount ({money(bill.due_amount)})')

    actor = performed_by if performed_by is not None and performed_by.is_authenticated else None
    payment = Payment.objects.create(
        bill=bill,
        amount=amount,
        payment_method=method,
        transaction_id=transaction_id or '',
        notes=notes or '',
        status=Payment.STATUS_SUCCESS,
        received_by=actor,
    )
    bill.paid_amount += amount
    bill.due_amount -= amount
    bill.status = bill_status_for(bill.total_amount, bill.due_amount)
    bill.save(update_fields=['paid_amount', 'due_amount', 'status', 'updated_at'])

    event_type = EventType.PAYMENT_RECEIVED if bill.status == Bill.Status.PAID else EventType.PAYMENT_PARTIAL
    events.append(
        bill.appointment_id, event_type, performed_by=actor,
        metadata={
            'billNumber': bill.bill_number,
            'paymentId': payment.id,
            'amount': money(amount),
            'method': method,
            'dueAmount': money(bill.due_amount),
        },
    )
    logger.info('Bill %s: payment %s of %s via %s, status %s', bill.bill_number, payment.id, money(amount), method, bill.status)
    return payment, bill


# -- Idempotency-Key support -------------------------------------------------

def _idempotency_cache_key(user_id, key: str) -> str:
    return f'payment:idem:{user_id}:{key}'


def record_payment_once(idempotency_key: Optional[str], *, performed_by: Optional[User] = None, **kwargs) -> tuple[dict, bool]:
    """Record a payment at most once per ``Idempotency-Key``.

    Returns ``(result, replayed)``.  A repeated key returns the stored
    result of the first call; a key whose first call is still running is
    reported as a conflict.  Failed attempts are not remembered.
    """
    if not idempotency_key:
        payment, bill = record_payment(performed_by=performed_by, **kwargs)
        return _result(payment, bill), False

    ck = _idempotency_cache_key(getattr(performed_by, 'pk', None), idempotency_key)
    ttl = settings.PAYMENT_IDEMPOTENCY_TTL
    if not cache.add(ck, {'state': 'pending'}, ttl):
        stored = cache.get(ck) or {}
        if stored.get('state') == 'done':
            return stored['result'], True
        raise Conflict('A payment with this Idempotency-Key is still being processed')
    try:
        payment, bill = record_payment(performed_by=performed_by, **kwargs)
    except Exception:
        cache.delete(ck)
        raise
    result = _result(payment, bill)
    cache.set(ck, {'state': 'done', 'result': result}, ttl)
    return result, False


def _result(payment: Payment, bill: Bill) -> dict:
    return {'payment': format_payment(payment), 'bill': format_bill(bill, with_items=False)}
