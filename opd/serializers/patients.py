from rest_framework import serializers

from opd.models import Patient

from .common import CleanCharField


class PatientCreateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    phone = CleanCharField(max_length=20)
    age = serializers.IntegerField(min_value=0, max_value=150)
    gender = serializers.ChoiceField(choices=Patient.Gender.choices, required=False, allow_blank=True)
    bloodGroup = serializers.ChoiceField(choices=Patient.BloodGroup.choices, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = CleanCharField(max_length=500, required=False, allow_blank=True)
    notes = CleanCharField(max_length=2000, required=False, allow_blank=True)

    def validate_name(self, v):
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v

    def validate_phone(self, v):
        digits = v.replace('+', '').replace('-', '').replace(' ', '')
        if not digits.isdigit() or len(digits) < 6:
            raise serializers.ValidationError('Invalid phone number')
        return v

    def to_patient_fields(self) -> dict:
        return patient_fields(self.validated_data)


def patient_fields(d) -> dict:
    """Map validated camelCase input to Patient model fields."""
    return {
        'name': d['name'],
        'phone': d['phone'],
        'age': d['age'],
        'gender': d.get('gender') or '',
        'blood_group': d.get('bloodGroup') or '',
        'email': d.get('email') or '',
        'address': d.get('address') or '',
        'notes': d.get('notes') or '',
    }
