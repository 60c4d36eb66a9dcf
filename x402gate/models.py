from django.db import models


class Payment(models.Model):
    """An on-chain payment that passed verification. Rows are never updated."""

    tx_hash = models.CharField(max_length=66, primary_key=True)
    from_address = models.CharField(max_length=42)
    # uint256 in the asset's smallest unit, stored as a decimal string.
    amount = models.CharField(max_length=78)
    service = models.CharField(max_length=255)
    timestamp = models.BigIntegerField()
    verified_at = models.BigIntegerField()

    class Meta:
        db_table = 'payments'
        ordering = ['-verified_at', '-timestamp']
        indexes = [
            models.Index(fields=['from_address'], name='idx_from_address'),
            models.Index(fields=['timestamp'], name='idx_timestamp'),
        ]

    def __str__(self) -> str:
        return f'{self.tx_hash} ({self.amount} from {self.from_address})'

    def to_dict(self) -> dict:
        return {
            'tx_hash': self.tx_hash,
            'from_address': self.from_address,
            'amount': self.amount,
            'service': self.service,
            'timestamp': self.timestamp,
            'verified_at': self.verified_at,
        }


class ConsumedNonce(models.Model):
    nonce = models.CharField(max_length=66, primary_key=True)
    used_at = models.BigIntegerField()

    class Meta:
        db_table = 'used_nonces'
        ordering = ['-used_at']

    def __str__(self) -> str:
        return self.nonce
