import bleach
from rest_framework import serializers

from clinic.models import Patient


class PatientSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100, required=False, allow_blank=True)
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True)
    gender = serializers.ChoiceField(choices=Patient.GENDER_CHOICES, required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    bloodGroup = serializers.ChoiceField(source='blood_group', choices=Patient.BLOOD_GROUPS,
                                         required=False, allow_blank=True)
    emergencyContactName = serializers.CharField(source='emergency_contact_name', required=False,
                                                 allow_blank=True, max_length=200)
    emergencyContactPhone = serializers.CharField(source='emergency_contact_phone', required=False,
                                                  allow_blank=True, max_length=20)
    allergies = serializers.ListField(child=serializers.CharField(max_length=100, allow_blank=True), required=False)
    medicalHistory = serializers.CharField(source='medical_history', required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Patient.STATUS_CHOICES, required=False)

    def validate_firstName(self, v):
        v = bleach.clean((v or '').strip(), tags=set(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('first name must be at least 2 characters')
        return v

    def validate_allergies(self, v):
        return [bleach.clean(a.strip(), tags=set(), strip=True) for a in v if a.strip()]


class PatientListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    gender = serializers.ChoiceField(choices=Patient.GENDER_CHOICES, required=False)
    bloodGroup = serializers.CharField(source='blood_group', required=False, max_length=5)
    status = serializers.ChoiceField(choices=Patient.STATUS_CHOICES, required=False)
    minAge = serializers.IntegerField(source='min_age', required=False, min_value=0, max_value=150)
    maxAge = serializers.IntegerField(source='max_age', required=False, min_value=0, max_value=150)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)
