from decimal import Decimal

import pytest

from opd.exceptions import AlreadyPaid, AmountExceedsDue, BillNotPayable, DomainValidationError
from opd.models import Bill, EventType, Payment
from opd.services import billing, events
from opd.services.appointments import create_appointment
from opd.services.payments import record_payment, record_payment_once

pytestmark = pytest.mark.django_db


@pytest.fixture
def bill(doctor, patient):
    return create_appointment(patient_id=patient.id, doctor_id=doctor.id).bill


def _snapshot(bill):
    bill.refresh_from_db()
    return bill.paid_amount, bill.due_amount, bill.status


def test_partial_then_full_payment(bill, reception):
    payment, updated = record_payment(bill_id=bill.id, amount=Decimal('300'), method='CASH', performed_by=reception)
    assert payment.status == Payment.STATUS_SUCCESS
    assert payment.received_by == reception
    assert _snapshot(bill) == (Decimal('300.00'), Decimal('300.00'), Bill.Status.PARTIAL)
    assert events.latest(bill.appointment_id, EventType.PAYMENT_PARTIAL).metadata['amount'] == '300.00'

    record_payment(bill_id=bill.id, amount=Decimal('300'), method='CARD')
    assert _snapshot(bill) == (Decimal('600.00'), Decimal('0.00'), Bill.Status.PAID)
    assert events.has_event(bill.appointment_id, EventType.PAYMENT_RECEIVED)

    with pytest.raises(AlreadyPaid):
        record_payment(bill_id=bill.id, amount=Decimal('1'), method='CASH')
    assert _snapshot(bill) == (Decimal('600.00'), Decimal('0.00'), Bill.Status.PAID)
    assert Payment.objects.filter(bill=bill).count() == 2


def test_overpayment_is_rejected_without_side_effects(bill):
    with pytest.raises(AmountExceedsDue):
        record_payment(bill_id=bill.id, amount=Decimal('600.01'), method='CASH')
    assert _snapshot(bill) == (Decimal('0.00'), Decimal('600.00'), Bill.Status.PENDING)
    assert not Payment.objects.exists()


@pytest.mark.parametrize('amount', ['0', '-5'])
def test_amount_must_be_positive(bill, amount):
    with pytest.raises(DomainValidationError):
        record_payment(bill_id=bill.id, amount=Decimal(amount), method='CASH')
    assert not Payment.objects.exists()


def test_cancelled_bill_cannot_be_paid(bill):
    billing.set_bill_status(bill.id, Bill.Status.CANCELLED)
    with pytest.raises(BillNotPayable):
        record_payment(bill_id=bill.id, amount=Decimal('100'), method='CASH')


def test_paid_amount_matches_sum_of_payments(bill):
    for amount in ('100', '150.50', '49.50'):
        record_payment(bill_id=bill.id, amount=Decimal(amount), method='ONLINE')
    bill.refresh_from_db()
    assert sum(p.amount for p in bill.payments.filter(status=Payment.STATUS_SUCCESS)) == bill.paid_amount
    assert bill.paid_amount + bill.due_amount == bill.total_amount


def test_idempotency_key_replays_first_result(bill, reception):
    kwargs = dict(bill_id=bill.id, amount=Decimal('200'), method='CASH')
    first, replayed = record_payment_once('key-1', performed_by=reception, **kwargs)
    again, replayed_again = record_payment_once('key-1', performed_by=reception, **kwargs)

    assert (replayed, replayed_again) == (False, True)
    assert again == first
    assert Payment.objects.filter(bill=bill).count() == 1
    assert _snapshot(bill)[0] == Decimal('200.00')


def test_failed_attempt_does_not_burn_the_key(bill, reception):
    with pytest.raises(AmountExceedsDue):
        record_payment_once('key-2', performed_by=reception, bill_id=bill.id, amount=Decimal('9999'), method='CASH')
    result, replayed = record_payment_once('key-2', performed_by=reception, bill_id=bill.id,
                                           amount=Decimal('600'), method='CASH')
    assert replayed is False
    assert result['bill']['status'] == Bill.Status.PAID
