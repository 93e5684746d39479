from rest_framework import serializers

from clinic.models import Invoice, InvoiceItem, Visit

PERCENT = dict(max_digits=5, decimal_places=2, min_value=0, max_value=100)


class InvoiceItemSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    category = serializers.ChoiceField(choices=InvoiceItem.CATEGORY_CHOICES, required=False, default='other')
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=12, decimal_places=2, min_value=0)


class InvoiceSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True, min_value=1)
    visitId = serializers.IntegerField(source='visit_id', required=False, allow_null=True, min_value=1)
    visitType = serializers.ChoiceField(source='visit_type', choices=Visit.TYPE_CHOICES, required=False,
                                        default='opd')
    invoiceDate = serializers.DateField(source='invoice_date', required=False)
    dueDate = serializers.DateField(source='due_date', required=False, allow_null=True)
    items = InvoiceItemSerializer(many=True)
    discountPercentage = serializers.DecimalField(source='discount_percentage', required=False, default=0, **PERCENT)
    taxPercentage = serializers.DecimalField(source='tax_percentage', required=False, default=0, **PERCENT)
    paymentMethod = serializers.ChoiceField(source='payment_method', choices=Invoice.PAYMENT_METHOD_CHOICES,
                                            required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=['draft', 'pending'], required=False, default='pending')


class InvoiceUpdateSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True, min_value=1)
    visitType = serializers.ChoiceField(source='visit_type', choices=Visit.TYPE_CHOICES, required=False)
    dueDate = serializers.DateField(source='due_date', required=False, allow_null=True)
    items = InvoiceItemSerializer(many=True, required=False)
    discountPercentage = serializers.DecimalField(source='discount_percentage', required=False, **PERCENT)
    taxPercentage = serializers.DecimalField(source='tax_percentage', required=False, **PERCENT)
    paymentMethod = serializers.ChoiceField(source='payment_method', choices=Invoice.PAYMENT_METHOD_CHOICES,
                                            required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=['draft', 'pending', 'cancelled'], required=False)


class CalculateTotalsSerializer(serializers.Serializer):
    items = InvoiceItemSerializer(many=True)
    discountPercentage = serializers.DecimalField(source='discount_percentage', required=False, default=0, **PERCENT)
    taxPercentage = serializers.DecimalField(source='tax_percentage', required=False, default=0, **PERCENT)


class PaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    paymentMethod = serializers.ChoiceField(source='payment_method', choices=Invoice.PAYMENT_METHOD_CHOICES)
    transactionId = serializers.CharField(source='transaction_id', required=False, allow_blank=True,
                                          max_length=100, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class MarkPaidSerializer(serializers.Serializer):
    paymentMethod = serializers.ChoiceField(source='payment_method', choices=Invoice.PAYMENT_METHOD_CHOICES,
                                            required=False, default='cash')
    transactionId = serializers.CharField(source='transaction_id', required=False, allow_blank=True,
                                          max_length=100, default='')


class InvoiceListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, max_length=64)
    status = serializers.ChoiceField(choices=Invoice.STATUS_CHOICES, required=False)
    paymentMethod = serializers.ChoiceField(source='payment_method', choices=Invoice.PAYMENT_METHOD_CHOICES,
                                            required=False)
    visitType = serializers.ChoiceField(source='visit_type', choices=Visit.TYPE_CHOICES, required=False)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, min_value=1)
    patientId = serializers.IntegerField(source='patient_id', required=False, min_value=1)
    dateFrom = serializers.DateField(source='date_from', required=False)
    dateTo = serializers.DateField(source='date_to', required=False)
    minAmount = serializers.DecimalField(source='min_amount', max_digits=12, decimal_places=2, required=False)
    maxAmount = serializers.DecimalField(source='max_amount', max_digits=12, decimal_places=2, required=False)
