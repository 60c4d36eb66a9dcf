from django.contrib import admin

from x402gate.models import ConsumedNonce, Payment


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdmin):
    list_display = ("tx_hash", "from_address", "amount", "service", "timestamp", "verified_at")
    list_filter = ("service",)
    search_fields = ("tx_hash", "from_address")


@admin.register(ConsumedNonce)
class ConsumedNonceAdmin(ReadOnlyAdmin):
    list_display = ("nonce", "used_at")
    search_fields = ("nonce",)
