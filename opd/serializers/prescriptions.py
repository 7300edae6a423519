from rest_framework import serializers

from .common import CleanCharField


class PrescriptionItemSerializer(serializers.Serializer):
    medicineId = serializers.IntegerField(min_value=1)
    instructionId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    duration = CleanCharField(max_length=64, required=False, allow_blank=True)
    notes = CleanCharField(max_length=500, required=False, allow_blank=True)


class PrescriptionCreateSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    notes = CleanCharField(max_length=4000, required=False, allow_blank=True, default='')
    followUpDate = serializers.DateField(required=False, allow_null=True)
    items = PrescriptionItemSerializer(many=True, allow_empty=False)

    def items_for_service(self) -> list[dict]:
        return [
            {
                'medicine_id': i['medicineId'],
                'instruction_id': i.get('instructionId'),
                'duration': i.get('duration', ''),
                'notes': i.get('notes', ''),
            }
            for i in self.validated_data['items']
        ]
