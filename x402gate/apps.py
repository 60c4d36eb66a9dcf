from django.apps import AppConfig


class X402GateConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'x402gate'
    verbose_name = 'x402 payment gate'
