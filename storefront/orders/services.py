"""
Order aggregate: creation against the stock ledger, cancellation and the
read paths used by the API and the admin.
"""
import logging
import string
from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q

from catalog.models import Variant

from . import notifications
from .exceptions import OrderNotFound, OutOfStock, PriceUnavailable, VariantNotFound
from .models import Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    variant_id: int
    quantity: int


class OrderService:

    def __init__(self, ledger, status_machine, notifier):
        self.ledger = ledger
        self.status_machine = status_machine
        self.notifier = notifier

    def create(self, lines, owner, shipping_address=None, order_type='online', idempotency_key=None):
        """
        Create an order, its items and the matching stock debits as one unit.

        Prices come from the catalog, never from the caller. If any debit
        fails the whole transaction rolls back, so no partial debit or
        orphan order survives.

        Args:
            lines: iterable of OrderLine
            owner: RegisteredOwner or GuestOwner
            shipping_address: dict (street, city, state, zip_region, country, phone)
            order_type: 'online' or 'manual_sale'
            idempotency_key: optional client key; a repeat returns the first order

        Raises:
            VariantNotFound, PriceUnavailable, OutOfStock
        """
        lines = list(lines)
        if not lines:
            raise ValueError("An order needs at least one item")
        for line in lines:
            if line.quantity <= 0:
                raise ValueError(f"Quantity must be positive for variant {line.variant_id}")

        if idempotency_key:
            existing = Order.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                logger.info(f"[Orders] Duplicate create request with key {idempotency_key}")
                return existing

        try:
            with transaction.atomic():
                priced = self._price_lines(lines)

                order = Order(
                    shipping_address=shipping_address or {},
                    order_type=order_type,
                    status=OrderStatus.PAID if order_type == 'manual_sale' else OrderStatus.AWAITING_PAYMENT,
                    idempotency_key=idempotency_key or None,
                )
                order.assign_owner(owner)
                order.save()

                OrderItem.objects.bulk_create([
                    OrderItem(order=order, variant=variant, quantity=quantity, unit_price=unit_price)
                    for variant, quantity, unit_price in priced
                ])

                for variant, quantity, _ in priced:
                    self.ledger.debit(variant.pk, quantity)

                notifications.emit_after_commit(self.notifier, notifications.ORDER_CREATED, order)

        except IntegrityError:
            # Two requests raced with the same idempotency key
            if idempotency_key:
                existing = Order.objects.filter(idempotency_key=idempotency_key).first()
                if existing:
                    return existing
            raise

        logger.info(
            f"[Orders] Order {order.pk} created ({order.order_type}, {len(priced)} items, status {order.status})"
        )
        return order

    def _price_lines(self, lines):
        priced = []
        for line in lines:
            variant = Variant.objects.select_related('product').filter(pk=line.variant_id).first()
            if variant is None:
                raise VariantNotFound(line.variant_id)
            if variant.product.price is None:
                raise PriceUnavailable(line.variant_id)
            if line.quantity > variant.stock:
                raise OutOfStock(line.variant_id, line.quantity, variant.stock)
            priced.append((variant, line.quantity, variant.product.price))
        return priced

    # ========================
    # STATUS CHANGES
    # ========================

    def cancel(self, order_id):
        return self.status_machine.cancel(order_id)

    def archive(self, order_id):
        return self.status_machine.archive(order_id)

    def unarchive(self, order_id):
        return self.status_machine.unarchive(order_id)

    # ========================
    # READS
    # ========================

    def get(self, order_id):
        try:
            return (
                Order.objects
                .select_related('user')
                .prefetch_related('items__variant__product')
                .get(pk=order_id)
            )
        except (Order.DoesNotExist, ValidationError, ValueError):
            raise OrderNotFound(f"Order {order_id} not found")

    def list_orders(self, status=None, search=None, page=1, limit=10):
        """
        Admin listing with status filter and search by guest name, guest
        email or the short id shown to customers.

        Returns:
            dict: {'orders': [...], 'pagination': {...}}
        """
        queryset = Order.objects.select_related('user').prefetch_related('items__variant__product')

        if status and status != 'all':
            queryset = queryset.filter(status=status)

        if search and search.strip():
            term = search.strip()
            condition = (
                Q(guest_name__icontains=term)
                | Q(guest_email__icontains=term)
                | Q(user__email__icontains=term)
            )
            if len(term) >= 3 and all(c in string.hexdigits for c in term.replace('-', '')):
                # short ids are the tail of the uuid
                condition |= Q(id__icontains=term)
            queryset = queryset.filter(condition)

        page = max(int(page), 1)
        limit = max(int(limit), 1)
        total = queryset.count()
        offset = (page - 1) * limit

        return {
            'orders': list(queryset[offset:offset + limit]),
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'total_pages': (total + limit - 1) // limit,
            },
        }

    def orders_for_user(self, user):
        """Orders owned by ``user`` or placed as a guest with the user's email."""
        condition = Q(user=user)
        if user.email:
            condition |= Q(user__isnull=True, guest_email__iexact=user.email)
        return list(
            Order.objects
            .filter(condition)
            .select_related('user')
            .prefetch_related('items__variant__product')
        )
