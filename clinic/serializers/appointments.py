from rest_framework import serializers

from clinic.models import Appointment

TIME_FORMATS = ['%H:%M', '%H:%M:%S']


class BookAppointmentSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', required=False, min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1)
    date = serializers.DateField()
    startTime = serializers.TimeField(source='start_time', input_formats=TIME_FORMATS)
    duration = serializers.IntegerField(required=False, min_value=5, max_value=240)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class UpdateAppointmentSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(source='doctor_id', required=False, min_value=1)
    date = serializers.DateField(required=False)
    startTime = serializers.TimeField(source='start_time', required=False, input_formats=TIME_FORMATS)
    duration = serializers.IntegerField(required=False, min_value=5, max_value=240)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)
    followUpRequired = serializers.BooleanField(source='follow_up_required', required=False)


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Appointment.STATUS_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True)


class CancelAppointmentSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default='')


class CompleteAppointmentSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    followUpRequired = serializers.BooleanField(source='follow_up_required', required=False, default=False)


class AppointmentListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, min_value=1)
    patientId = serializers.IntegerField(source='patient_id', required=False, min_value=1)
    status = serializers.ChoiceField(choices=Appointment.STATUS_CHOICES, required=False)
    specialization = serializers.CharField(required=False, max_length=100)
    dateFrom = serializers.DateField(source='date_from', required=False)
    dateTo = serializers.DateField(source='date_to', required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500)


class AvailabilityQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1)
    date = serializers.DateField()
