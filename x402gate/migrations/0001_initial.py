from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("tx_hash", models.CharField(max_length=66, primary_key=True, serialize=False)),
                ("from_address", models.CharField(max_length=42)),
                ("amount", models.CharField(max_length=78)),
                ("service", models.CharField(max_length=255)),
                ("timestamp", models.BigIntegerField()),
                ("verified_at", models.BigIntegerField()),
            ],
            options={
                "db_table": "payments",
                "ordering": ["-verified_at", "-timestamp"],
                "indexes": [
                    models.Index(fields=["from_address"], name="idx_from_address"),
                    models.Index(fields=["timestamp"], name="idx_timestamp"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ConsumedNonce",
            fields=[
                ("nonce", models.CharField(max_length=66, primary_key=True, serialize=False)),
                ("used_at", models.BigIntegerField()),
            ],
            options={
                "db_table": "used_nonces",
                "ordering": ["-used_at"],
            },
        ),
    ]
