from decimal import Decimal

from rest_framework import serializers

from opd.models import Bill, BillItem, Payment

from .common import CleanCharField

MONEY = dict(max_digits=12, decimal_places=2)


class PaymentCreateSerializer(serializers.Serializer):
    billId = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(**MONEY, min_value=Decimal('0.01'))
    paymentMethod = serializers.ChoiceField(choices=Payment.Method.choices)
    transactionId = CleanCharField(max_length=128, required=False, allow_blank=True)
    notes = CleanCharField(max_length=1000, required=False, allow_blank=True)


class BillItemCreateSerializer(serializers.Serializer):
    itemType = serializers.ChoiceField(choices=[BillItem.ItemType.SERVICE, BillItem.ItemType.TEST])
    itemName = CleanCharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)
    unitPrice = serializers.DecimalField(**MONEY, min_value=Decimal('0'))
    discount = serializers.DecimalField(**MONEY, min_value=Decimal('0'), required=False, default=Decimal('0'))


class BillStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Bill.Status.CANCELLED, Bill.Status.REFUNDED])
    notes = CleanCharField(max_length=1000, required=False, allow_blank=True, default='')
