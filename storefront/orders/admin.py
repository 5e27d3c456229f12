from django.contrib import admin, messages

from storefront.exceptions import StorefrontError
from storefront.wiring import get_services

from .models import LoyaltyAccount, Order, OrderItem, OrderStatus, PaymentProof


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('variant', 'quantity', 'unit_price')
    can_delete = False


class PaymentProofInline(admin.StackedInline):
    model = PaymentProof
    extra = 0
    readonly_fields = ('storage_ref', 'method', 'reference', 'review_status', 'reason', 'updated_at')
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('short_id', 'customer_name', 'order_type', 'status', 'tracking_number', 'created_at')
    list_filter = ('status', 'order_type', 'created_at')
    search_fields = ('id', 'guest_name', 'guest_email', 'user__email')
    # Status only moves through the state machine (actions below); the owner is fixed at creation
    readonly_fields = (
        'id', 'status', 'user', 'guest_name', 'guest_contact', 'guest_email',
        'loyalty_tokens_granted', 'idempotency_key', 'created_at', 'updated_at')
    inlines = [OrderItemInline, PaymentProofInline]

    actions = ['approve_payment', 'mark_in_production', 'mark_completed', 'cancel_orders', 'archive_orders']

    @admin.display(description='Customer')
    def customer_name(self, obj):
        return obj.customer_contact()['name']

    def _run(self, request, queryset, operation, label):
        done = 0
        for order in queryset:
            try:
                operation(order.pk)
                done += 1
            except StorefrontError as e:
                self.message_user(request, f"Order #{order.short_id}: {e.message}", messages.WARNING)
        if done:
            self.message_user(request, f"{done} order(s) {label}", messages.SUCCESS)

    @admin.action(description="Approve payment")
    def approve_payment(self, request, queryset):
        proofs = get_services().proofs
        self._run(request, queryset, lambda pk: proofs.review_proof(pk, 'verified'), 'marked as paid')

    @admin.action(description="Mark as in production")
    def mark_in_production(self, request, queryset):
        machine = get_services().status_machine
        self._run(request, queryset, lambda pk: machine.advance(pk, OrderStatus.IN_PRODUCTION), 'in production')

    @admin.action(description="Mark as completed")
    def mark_completed(self, request, queryset):
        machine = get_services().status_machine
        self._run(request, queryset, lambda pk: machine.advance(pk, OrderStatus.COMPLETED), 'completed')

    @admin.action(description="Cancel and return stock")
    def cancel_orders(self, request, queryset):
        self._run(request, queryset, get_services().orders.cancel, 'cancelled')

    @admin.action(description="Archive")
    def archive_orders(self, request, queryset):
        self._run(request, queryset, get_services().orders.archive, 'archived')


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    list_display = ('user', 'tokens')
    search_fields = ('user__email', 'user__username')
