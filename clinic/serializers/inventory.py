from rest_framework import serializers

from clinic.models import Medicine


class MedicineSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    genericName = serializers.CharField(source='generic_name', required=False, allow_blank=True, max_length=200)
    category = serializers.ChoiceField(choices=Medicine.CATEGORY_CHOICES, required=False)
    manufacturer = serializers.CharField(required=False, allow_blank=True, max_length=200)
    batchNumber = serializers.CharField(source='batch_number', required=False, allow_blank=True, max_length=50)
    quantity = serializers.IntegerField(required=False, min_value=0)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=10, decimal_places=2, required=False,
                                         min_value=0)
    minThreshold = serializers.IntegerField(source='min_threshold', required=False, min_value=0)
    expiryDate = serializers.DateField(source='expiry_date', required=False, allow_null=True)
    vendorId = serializers.IntegerField(source='vendor_id', required=False, allow_null=True, min_value=1)
    description = serializers.CharField(required=False, allow_blank=True)


class MedicineListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    category = serializers.ChoiceField(choices=Medicine.CATEGORY_CHOICES, required=False)
    status = serializers.ChoiceField(choices=['available', 'low_stock', 'out_of_stock', 'expired', 'expiring_soon'],
                                     required=False)
    vendorId = serializers.IntegerField(source='vendor_id', required=False, min_value=1)


class RestockSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    vendorId = serializers.IntegerField(source='vendor_id', required=False, allow_null=True, min_value=1)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=10, decimal_places=2, required=False,
                                         allow_null=True, min_value=0)
    batchNumber = serializers.CharField(source='batch_number', required=False, allow_blank=True, max_length=50,
                                        default='')
    expiryDate = serializers.DateField(source='expiry_date', required=False, allow_null=True)


class DispenseSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    patientId = serializers.IntegerField(source='patient_id', required=False, allow_null=True, min_value=1)
    visitId = serializers.IntegerField(source='visit_id', required=False, allow_null=True, min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class VendorSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    contactPerson = serializers.CharField(source='contact_person', required=False, allow_blank=True, max_length=200)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    isActive = serializers.BooleanField(source='is_active', required=False)
