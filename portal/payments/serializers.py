from rest_framework import serializers

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "user",
            "amount",
            "currency",
            "status",
            "payment_method",
            "transaction_id",
            "payment_for",
            "course",
            "exam",
            "metadata",
            "error_code",
            "error_message",
            "refund_reason",
            "refund_amount",
            "refund_status",
            "refund_processed_at",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields


class RecordPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    currency = serializers.CharField(max_length=3, default="USD")
    payment_method = serializers.ChoiceField(choices=Payment.Method.choices)
    payment_for = serializers.ChoiceField(choices=Payment.PaymentFor.choices)
    item_id = serializers.IntegerField()
    metadata = serializers.DictField(required=False, default=dict)


class CompletePaymentSerializer(serializers.Serializer):
    transaction_id = serializers.CharField(max_length=255, required=False, allow_blank=True)
    gateway_response = serializers.DictField(required=False, default=dict)


class FailPaymentSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    message = serializers.CharField(required=False, allow_blank=True, default="")


class RefundSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
