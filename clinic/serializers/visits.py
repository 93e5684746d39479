from rest_framework import serializers

from clinic.models import Bed, Visit


class VisitSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True, min_value=1)
    appointmentId = serializers.IntegerField(source='appointment_id', required=False, allow_null=True, min_value=1)
    visitType = serializers.ChoiceField(source='visit_type', choices=Visit.TYPE_CHOICES, default='opd')
    visitDate = serializers.DateField(source='visit_date', required=False)
    bedId = serializers.IntegerField(source='bed_id', required=False, allow_null=True, min_value=1)
    chiefComplaint = serializers.CharField(source='chief_complaint', required=False, allow_blank=True,
                                           max_length=255)
    symptoms = serializers.ListField(child=serializers.CharField(max_length=100), required=False)
    diagnosis = serializers.CharField(required=False, allow_blank=True, max_length=255)
    prescribedMedicines = serializers.ListField(source='prescribed_medicines', child=serializers.JSONField(),
                                                required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    expectedDischargeDate = serializers.DateField(source='expected_discharge_date', required=False, allow_null=True)
    followUpDate = serializers.DateField(source='follow_up_date', required=False, allow_null=True)


class VisitUpdateSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True, min_value=1)
    chiefComplaint = serializers.CharField(source='chief_complaint', required=False, allow_blank=True,
                                           max_length=255)
    symptoms = serializers.ListField(child=serializers.CharField(max_length=100), required=False)
    diagnosis = serializers.CharField(required=False, allow_blank=True, max_length=255)
    prescribedMedicines = serializers.ListField(source='prescribed_medicines', child=serializers.JSONField(),
                                                required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Visit.STATUS_CHOICES, required=False)
    expectedDischargeDate = serializers.DateField(source='expected_discharge_date', required=False, allow_null=True)
    followUpDate = serializers.DateField(source='follow_up_date', required=False, allow_null=True)


class VisitListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    visitType = serializers.ChoiceField(source='visit_type', choices=Visit.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=Visit.STATUS_CHOICES, required=False)
    patientId = serializers.IntegerField(source='patient_id', required=False, min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, min_value=1)
    dateFrom = serializers.DateField(source='date_from', required=False)
    dateTo = serializers.DateField(source='date_to', required=False)


class DischargeSerializer(serializers.Serializer):
    finalDiagnosis = serializers.CharField(source='final_diagnosis', required=False, allow_blank=True,
                                           max_length=255)
    treatmentGiven = serializers.CharField(source='treatment_given', required=False, allow_blank=True)
    medicinesAtDischarge = serializers.ListField(source='medicines_at_discharge',
                                                 child=serializers.CharField(max_length=200), required=False)
    followUpInstructions = serializers.CharField(source='follow_up_instructions', required=False, allow_blank=True)
    finalNotes = serializers.CharField(source='final_notes', required=False, allow_blank=True)


class VitalsSerializer(serializers.Serializer):
    bloodPressure = serializers.RegexField(r'^\d{2,3}/\d{2,3}$', source='blood_pressure', required=False,
                                           allow_blank=True)
    temperature = serializers.DecimalField(max_digits=5, decimal_places=1, required=False, allow_null=True)
    heartRate = serializers.IntegerField(source='heart_rate', required=False, allow_null=True, min_value=0)
    respiratoryRate = serializers.IntegerField(source='respiratory_rate', required=False, allow_null=True,
                                               min_value=0)
    oxygenSaturation = serializers.IntegerField(source='oxygen_saturation', required=False, allow_null=True,
                                                min_value=0)
    weight = serializers.DecimalField(max_digits=5, decimal_places=1, required=False, allow_null=True, min_value=0)


class BedSerializer(serializers.Serializer):
    bedNumber = serializers.CharField(source='bed_number', max_length=20)
    roomNumber = serializers.CharField(source='room_number', required=False, allow_blank=True, max_length=20)
    ward = serializers.CharField(required=False, allow_blank=True, max_length=100)
    bedType = serializers.ChoiceField(source='bed_type', choices=Bed.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=Bed.STATUS_CHOICES, required=False)


class BedListQuerySerializer(serializers.Serializer):
    ward = serializers.CharField(required=False, max_length=100)
    status = serializers.ChoiceField(choices=Bed.STATUS_CHOICES, required=False)
    bedType = serializers.ChoiceField(source='bed_type', choices=Bed.TYPE_CHOICES, required=False)


class AssignBedSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
