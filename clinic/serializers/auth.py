import bleach
from rest_framework import serializers

from clinic.models import Patient, STAFF_ROLE_CHOICES


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()

    def validate_username(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('username is required')
        return v

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('password is required')
        return v


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    email = serializers.EmailField(required=False, allow_blank=True, default='')
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100, required=False, allow_blank=True, default='')
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20, default='')
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True, default=None)
    gender = serializers.ChoiceField(choices=Patient.GENDER_CHOICES, required=False, allow_blank=True, default='')

    def validate_firstName(self, v):
        v = bleach.clean((v or '').strip(), tags=set(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('first name must be at least 2 characters')
        return v


class ProfileUpdateSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=150, required=False)
    lastName = serializers.CharField(source='last_name', max_length=150, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)


class ChangePasswordSerializer(serializers.Serializer):
    currentPassword = serializers.CharField(source='current_password')
    newPassword = serializers.CharField(source='new_password')


class UserUpdateSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=150, required=False)
    lastName = serializers.CharField(source='last_name', max_length=150, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=STAFF_ROLE_CHOICES + [('patient', 'Patient')], required=False)
    isActive = serializers.BooleanField(source='is_active', required=False)


class CreateStaffSerializer(serializers.Serializer):
    email = serializers.EmailField()
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100)
    role = serializers.ChoiceField(choices=STAFF_ROLE_CHOICES)
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)
    username = serializers.CharField(required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    department = serializers.CharField(required=False, allow_blank=True, max_length=100)
    specialization = serializers.CharField(required=False, allow_blank=True, max_length=100)
    licenseNumber = serializers.CharField(source='license_number', required=False, allow_blank=True, max_length=50)
    qualification = serializers.CharField(required=False, allow_blank=True, max_length=200)
    experienceYears = serializers.IntegerField(source='experience_years', required=False, min_value=0)
    consultationFee = serializers.DecimalField(source='consultation_fee', max_digits=10, decimal_places=2,
                                               required=False, min_value=0)
    shift = serializers.ChoiceField(choices=['morning', 'evening', 'night', 'rotating'], required=False)
    hireDate = serializers.DateField(source='hire_date', required=False, allow_null=True)


class ResetStaffPasswordSerializer(serializers.Serializer):
    userId = serializers.IntegerField(source='user_id', required=False, min_value=1)
    email = serializers.EmailField(required=False)
    newPassword = serializers.CharField(source='new_password', required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs.get('user_id') and not attrs.get('email'):
            raise serializers.ValidationError('userId or email is required')
        return attrs


class PasswordResetRequestSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.CharField(required=False, allow_blank=True, max_length=20, default='')
    message = serializers.CharField(required=False, allow_blank=True, max_length=1000, default='')


class ResolveResetRequestSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['resolved', 'rejected'])
