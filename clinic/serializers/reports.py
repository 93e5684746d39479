from rest_framework import serializers

from clinic.models import MedicalReport


class ReportSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True, min_value=1)
    visitId = serializers.IntegerField(source='visit_id', required=False, allow_null=True, min_value=1)
    reportType = serializers.ChoiceField(source='report_type', choices=MedicalReport.TYPE_CHOICES, default='other')
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    fileUrl = serializers.URLField(source='file_url', required=False, allow_blank=True, max_length=500)
    fileName = serializers.CharField(source='file_name', required=False, allow_blank=True, max_length=255)
    fileSize = serializers.IntegerField(source='file_size', required=False, min_value=0)
    priority = serializers.ChoiceField(choices=MedicalReport.PRIORITY_CHOICES, default='normal')
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)


class ReportUpdateSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True, min_value=1)
    reportType = serializers.ChoiceField(source='report_type', choices=MedicalReport.TYPE_CHOICES, required=False)
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    fileUrl = serializers.URLField(source='file_url', required=False, allow_blank=True, max_length=500)
    priority = serializers.ChoiceField(choices=MedicalReport.PRIORITY_CHOICES, required=False)
    status = serializers.ChoiceField(choices=MedicalReport.STATUS_CHOICES, required=False)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)


class ReportListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    reportType = serializers.ChoiceField(source='report_type', choices=MedicalReport.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=MedicalReport.STATUS_CHOICES, required=False)
    priority = serializers.ChoiceField(choices=MedicalReport.PRIORITY_CHOICES, required=False)
    patientId = serializers.IntegerField(source='patient_id', required=False, min_value=1)
    tag = serializers.CharField(required=False, max_length=50)


class ReviewSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['reviewed', 'pending_review', 'archived'], default='reviewed')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
