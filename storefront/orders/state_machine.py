"""
Order status state machine.

    awaiting_payment -> paid -> in_production -> shipped -> completed
    any non-cancelled -> cancelled
    completed <-> archived   (unarchive is the only reverse edge)

Every transition runs against a row locked with ``select_for_update`` so
webhooks, proof reviews and admin actions on the same order serialize.
"""
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F

from storefront.exceptions import InvalidState

from . import notifications
from .exceptions import AlreadyCancelled, OrderNotFound
from .models import LoyaltyAccount, Order, OrderStatus, PaymentProof, ReviewStatus

logger = logging.getLogger(__name__)

HAPPY_PATH = (
    OrderStatus.AWAITING_PAYMENT,
    OrderStatus.PAID,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
)

PAID_OR_LATER = (
    OrderStatus.PAID,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
)

STATUS_EVENTS = {
    OrderStatus.PAID: notifications.PAYMENT_APPROVED,
    OrderStatus.IN_PRODUCTION: notifications.ORDER_IN_PRODUCTION,
    OrderStatus.SHIPPED: notifications.ORDER_SHIPPED,
    OrderStatus.COMPLETED: notifications.ORDER_COMPLETED,
    OrderStatus.CANCELLED: notifications.ORDER_CANCELLED,
    OrderStatus.ARCHIVED: notifications.ORDER_ARCHIVED,
}


def get_order_for_update(order_id):
    """Fetch and lock an order row. Must run inside ``transaction.atomic()``."""
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except (Order.DoesNotExist, ValidationError, ValueError):
        raise OrderNotFound(f"Order {order_id} not found")


class OrderStatusMachine:

    def __init__(self, ledger, notifier, tokens_per_order=None):
        self.ledger = ledger
        self.notifier = notifier
        self.tokens_per_order = (
            settings.LOYALTY_TOKENS_PER_ORDER if tokens_per_order is None else tokens_per_order
        )

    # ========================
    # ADMIN-DRIVEN TRANSITIONS
    # ========================

    def advance(self, order_id, target, tracking_number=None, shipping_provider=None):
        """
        Move an order forward along the happy path, or cancel / archive it.

        Re-setting the current status is a no-op and emits nothing; moving
        backwards raises InvalidState.
        """
        target = self._coerce(target)

        if target == OrderStatus.CANCELLED:
            return self.cancel(order_id)
        if target == OrderStatus.ARCHIVED:
            return self.archive(order_id)
        if target == OrderStatus.AWAITING_PAYMENT:
            raise InvalidState("Orders cannot be moved back to awaiting payment")

        with transaction.atomic():
            order = get_order_for_update(order_id)
            tracking_changed = self._set_tracking(order, tracking_number, shipping_provider)

            if order.status == target:
                if tracking_changed:
                    order.save(update_fields=['tracking_number', 'shipping_provider', 'updated_at'])
                return order

            if order.status not in HAPPY_PATH or HAPPY_PATH.index(target) <= HAPPY_PATH.index(order.status):
                raise InvalidState(f"Cannot move order from {order.status} to {target}")

            if target == OrderStatus.SHIPPED and not order.tracking_number:
                raise InvalidState("Shipping an order requires a tracking number")

            self.apply(order, target, extra_fields=['tracking_number', 'shipping_provider'] if tracking_changed else ())

        return order

    def update_tracking(self, order_id, tracking_number, shipping_provider=''):
        if not tracking_number:
            raise InvalidState("Tracking number is required")
        return self.advance(
            order_id,
            OrderStatus.SHIPPED,
            tracking_number=tracking_number,
            shipping_provider=shipping_provider,
        )

    def cancel(self, order_id):
        """Return every item's stock and mark the order cancelled."""
        with transaction.atomic():
            order = get_order_for_update(order_id)
            if order.status == OrderStatus.CANCELLED:
                raise AlreadyCancelled(f"Order {order.short_id} is already cancelled")

            for item in order.items.all():
                self.ledger.credit(item.variant_id, item.quantity)

            self.apply(order, OrderStatus.CANCELLED)

        logger.info(f"[Orders] Order {order.pk} cancelled, stock returned")
        return order

    def archive(self, order_id):
        """Visibility flag only: stock and tokens are untouched."""
        with transaction.atomic():
            order = get_order_for_update(order_id)
            if order.status == OrderStatus.ARCHIVED:
                return order
            if order.status != OrderStatus.COMPLETED:
                raise InvalidState(f"Only completed orders can be archived (order is {order.status})")
            self.apply(order, OrderStatus.ARCHIVED)
        return order

    def unarchive(self, order_id):
        with transaction.atomic():
            order = get_order_for_update(order_id)
            if order.status != OrderStatus.ARCHIVED:
                raise InvalidState("Order is not archived")
            self.apply(order, OrderStatus.COMPLETED, event=notifications.ORDER_UNARCHIVED)
        return order

    # ========================
    # RECONCILIATION
    # ========================

    def confirm_payment(self, order):
        """
        awaiting_payment -> paid, only from exactly awaiting_payment.

        A late confirmation for an order that already moved on (or was
        cancelled) never changes its status.

        Returns:
            bool: True if the order transitioned
        """
        if order.status != OrderStatus.AWAITING_PAYMENT:
            logger.info(
                f"[Orders] Payment confirmation for order {order.pk} ignored, status is {order.status}"
            )
            return False
        return self.apply(order, OrderStatus.PAID)

    # ========================
    # CORE
    # ========================

    def apply(self, order, target, event=None, extra_fields=()):
        """
        Apply a transition to an already-locked order and queue its event.

        Returns:
            bool: False when ``target`` is the current status (no-op)
        """
        previous = order.status
        if previous == target:
            return False

        order.status = target
        update_fields = ['status', 'updated_at', *extra_fields]

        if target in PAID_OR_LATER:
            promoted = PaymentProof.objects.filter(
                order=order, review_status=ReviewStatus.PENDING
            ).update(review_status=ReviewStatus.VERIFIED, reason='')
            if promoted:
                logger.info(f"[Orders] Pending payment proof of order {order.pk} auto-verified")

        if target == OrderStatus.COMPLETED and order.user_id and not order.loyalty_tokens_granted:
            self._grant_loyalty_tokens(order)
            order.loyalty_tokens_granted = True
            update_fields.append('loyalty_tokens_granted')

        order.save(update_fields=update_fields)
        logger.info(f"[Orders] Order {order.pk}: {previous} -> {target}")

        notifications.emit_after_commit(
            self.notifier,
            event or STATUS_EVENTS[OrderStatus(target)],
            order,
            {'previous_status': previous},
        )
        return True

    def _grant_loyalty_tokens(self, order):
        account, _ = LoyaltyAccount.objects.get_or_create(
            user_id=order.user_id,
            defaults={'tokens': settings.LOYALTY_TOKENS_INITIAL},
        )
        LoyaltyAccount.objects.filter(pk=account.pk).update(tokens=F('tokens') + self.tokens_per_order)
        logger.info(
            f"[Orders] Granted {self.tokens_per_order} loyalty tokens to user {order.user_id} "
            f"for order {order.pk}"
        )

    @staticmethod
    def _set_tracking(order, tracking_number, shipping_provider):
        changed = False
        if tracking_number and tracking_number != order.tracking_number:
            order.tracking_number = tracking_number
            changed = True
        if shipping_provider and shipping_provider != order.shipping_provider:
            order.shipping_provider = shipping_provider
            changed = True
        return changed

    @staticmethod
    def _coerce(target):
        try:
            return OrderStatus(target)
        except ValueError:
            raise InvalidState(f"Unknown order status: {target}")
