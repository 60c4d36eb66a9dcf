from rest_framework import serializers

from x402gate.models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['tx_hash', 'from_address', 'amount', 'service', 'timestamp', 'verified_at']
        read_only_fields = fields
