from rest_framework import serializers

from opd.models import Appointment

from .common import CleanCharField
from .patients import PatientCreateSerializer


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1)
    appointmentType = serializers.ChoiceField(choices=Appointment.Type.choices, required=False, default=Appointment.Type.NEW)
    chiefComplaint = CleanCharField(max_length=2000, required=False, allow_blank=True, default='')


class AppointmentWithNewPatientSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    appointmentType = serializers.ChoiceField(choices=Appointment.Type.choices, required=False, default=Appointment.Type.NEW)
    chiefComplaint = CleanCharField(max_length=2000, required=False, allow_blank=True, default='')
    patient = PatientCreateSerializer()


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Appointment.Status.choices)


class CallNextSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)


class AppointmentUpdateSerializer(serializers.Serializer):
    chiefComplaint = CleanCharField(max_length=2000, required=False, allow_blank=True)
    diagnosis = CleanCharField(max_length=4000, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Nothing to update')
        return attrs


class AppointmentListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=Appointment.Status.choices, required=False)
    date = serializers.DateField(required=False)
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=200, required=False, default=20)
