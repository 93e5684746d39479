from rest_framework import serializers

from clinic.models import STAFF_ROLE_CHOICES, StaffMember


class StaffSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    role = serializers.ChoiceField(choices=STAFF_ROLE_CHOICES)
    department = serializers.CharField(required=False, allow_blank=True, max_length=100)
    specialization = serializers.CharField(required=False, allow_blank=True, max_length=100)
    licenseNumber = serializers.CharField(source='license_number', required=False, allow_blank=True, max_length=50)
    qualification = serializers.CharField(required=False, allow_blank=True, max_length=200)
    experienceYears = serializers.IntegerField(source='experience_years', required=False, min_value=0)
    consultationFee = serializers.DecimalField(source='consultation_fee', max_digits=10, decimal_places=2,
                                               required=False, min_value=0)
    shift = serializers.ChoiceField(choices=StaffMember.SHIFT_CHOICES, required=False)
    wards = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    hireDate = serializers.DateField(source='hire_date', required=False, allow_null=True)
    status = serializers.ChoiceField(choices=StaffMember.STATUS_CHOICES, required=False)


class StaffListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    role = serializers.ChoiceField(choices=STAFF_ROLE_CHOICES, required=False)
    department = serializers.CharField(required=False, max_length=100)
    status = serializers.ChoiceField(choices=StaffMember.STATUS_CHOICES, required=False)
    specialization = serializers.CharField(required=False, max_length=100)


class DoctorQuerySerializer(serializers.Serializer):
    specialization = serializers.CharField(required=False, max_length=100)
    department = serializers.CharField(required=False, max_length=100)
    date = serializers.DateField(required=False)


class ScheduleEntrySerializer(serializers.Serializer):
    dayOfWeek = serializers.IntegerField(source='day_of_week', min_value=0, max_value=6)
    startTime = serializers.TimeField(source='start_time', input_formats=['%H:%M', '%H:%M:%S'])
    endTime = serializers.TimeField(source='end_time', input_formats=['%H:%M', '%H:%M:%S'])
    isAvailable = serializers.BooleanField(source='is_available', required=False, default=True)


class ScheduleSerializer(serializers.Serializer):
    schedule = ScheduleEntrySerializer(many=True)


class DateQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
