from rest_framework import serializers

from .models import Invoice, InvoicePayment


class InvoicePaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoicePayment
        fields = ['id', 'amount', 'reference', 'provider', 'status', 'verified_at', 'created_at']


class InvoiceSerializer(serializers.ModelSerializer):
    school_name = serializers.CharField(source='school.name', read_only=True)
    payments = InvoicePaymentSerializer(many=True, read_only=True)

    class Meta:
        model = Invoice
        fields = ['id', 'invoice_number', 'school', 'school_name', 'billing_period', 'student_count',
                  'teacher_count', 'total_users', 'price_per_user', 'amount', 'currency', 'status', 'due_date',
                  'paid_at', 'cancelled_at', 'notes', 'payments', 'created_at']
        read_only_fields = ['invoice_number', 'student_count', 'teacher_count', 'total_users', 'price_per_user',
                            'amount', 'status', 'due_date', 'paid_at', 'cancelled_at']

    def get_fields(self):
        fields = super().get_fields()
        if self.instance is not None:
            # The billed school and month are fixed once issued
            fields['school'].read_only = True
            fields['billing_period'].read_only = True
        return fields

    def validate(self, attrs):
        if self.instance is None:
            school = attrs['school']
            period = attrs['billing_period'].replace(day=1)
            if Invoice.objects.filter(school=school, billing_period=period).exists():
                raise serializers.ValidationError(
                    f"{school.name} already has an invoice for {period:%B %Y}")
            attrs['billing_period'] = period
        return attrs


class MarkPaidSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True)


class VerifyPaymentSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=100)
    invoice_id = serializers.IntegerField()
