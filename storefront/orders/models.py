import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from .owners import GuestOwner, RegisteredOwner


class OrderStatus(models.TextChoices):
    AWAITING_PAYMENT = 'awaiting_payment', 'Awaiting payment'
    PAID = 'paid', 'Paid'
    IN_PRODUCTION = 'in_production', 'In production'
    SHIPPED = 'shipped', 'Shipped'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    ARCHIVED = 'archived', 'Archived'


class ReviewStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    VERIFIED = 'verified', 'Verified'
    REJECTED = 'rejected', 'Rejected'


class Order(models.Model):
    ORDER_TYPE_CHOICES = [
        ('online', 'Online'),
        ('manual_sale', 'Manual sale'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Owner: registered user OR guest contact (see owners.py)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
    )
    guest_name = models.CharField(max_length=150, blank=True, default='')
    guest_contact = models.CharField(max_length=50, blank=True, default='')
    guest_email = models.EmailField(blank=True, default='')

    order_type = models.CharField(max_length=20, choices=ORDER_TYPE_CHOICES, default='online')
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.AWAITING_PAYMENT,
    )

    shipping_address = models.JSONField(default=dict, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True, default='')
    shipping_provider = models.CharField(max_length=100, blank=True, default='')

    loyalty_tokens_granted = models.BooleanField(default=False)

    # Idempotency key to avoid creating the same order twice
    idempotency_key = models.CharField(max_length=100, unique=True, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='order_status_idx'),
            models.Index(fields=['created_at'], name='order_created_at_idx'),
            models.Index(fields=['guest_email'], name='order_guest_email_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(user__isnull=False, guest_name='', guest_contact='', guest_email='')
                    | models.Q(user__isnull=True) & ~models.Q(guest_name='')
                ),
                name='order_owner_registered_xor_guest',
            ),
        ]

    def __str__(self):
        return f"Order #{self.short_id} ({self.status})"

    @property
    def short_id(self):
        return self.id.hex[-6:].upper()

    @property
    def owner(self):
        if self.user_id is not None:
            return RegisteredOwner(user_id=self.user_id)
        return GuestOwner(name=self.guest_name, contact=self.guest_contact, email=self.guest_email)

    def assign_owner(self, owner):
        if isinstance(owner, RegisteredOwner):
            self.user_id = owner.user_id
            self.guest_name = self.guest_contact = self.guest_email = ''
        elif isinstance(owner, GuestOwner):
            self.user_id = None
            self.guest_name = owner.name
            self.guest_contact = owner.contact or ''
            self.guest_email = owner.email or ''
        else:
            raise TypeError(f"Unsupported owner type: {type(owner).__name__}")

    def customer_contact(self):
        """Name / email / phone used by notifications and gateways."""
        phone = (self.shipping_address or {}).get('phone', '')
        if self.user_id is not None and self.user is not None:
            full_name = ' '.join(p for p in (self.user.first_name, self.user.last_name) if p)
            return {
                'user_id': self.user_id,
                'name': full_name or self.user.get_username(),
                'email': self.user.email or '',
                'phone': phone,
            }
        return {
            'user_id': None,
            'name': self.guest_name,
            'email': self.guest_email,
            'phone': phone or self.guest_contact,
        }

    def get_subtotal(self):
        total = Decimal('0.00')
        for item in self.items.all():
            total += item.line_total
        return total.quantize(Decimal('0.01'))


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    variant = models.ForeignKey('catalog.Variant', on_delete=models.PROTECT, related_name='order_items')
    quantity = models.PositiveIntegerField()
    # Captured from the catalog at creation, never recomputed
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='order_item_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.variant} x {self.quantity}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity


class PaymentProof(models.Model):
    METHOD_CHOICES = [
        ('transfer', 'Bank transfer'),
        ('sinpe', 'SINPE Movil'),
        ('other', 'Other'),
        ('onvopay', 'Onvopay'),
        ('paypal', 'PayPal'),
    ]

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='payment_proof')
    storage_ref = models.CharField(max_length=500, blank=True, default='')
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, blank=True, default='')
    reference = models.CharField(max_length=200, blank=True, default='')
    review_status = models.CharField(
        max_length=20,
        choices=ReviewStatus.choices,
        default=ReviewStatus.PENDING,
    )
    reason = models.CharField(max_length=500, blank=True, default='')

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Proof for order #{self.order.short_id} - {self.review_status}"


class LoyaltyAccount(models.Model):
    """Per-account token balance, credited when an owned order completes."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='loyalty_account',
    )
    tokens = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.user} - {self.tokens} tokens"
