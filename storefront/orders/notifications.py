"""
Notification dispatch.

The order core only calls ``notify(event_name, order_snapshot, extra)``.
Each call is handed to a detached Celery task; any failure to enqueue is
logged here and never reaches the mutation that triggered it.
"""
import logging

from django.db import transaction

from .models import PaymentProof
from .tasks import dispatch_notification

logger = logging.getLogger(__name__)

ORDER_CREATED = 'order.created'
PAYMENT_PROOF_RECEIVED = 'payment.proofReceived'
PAYMENT_APPROVED = 'payment.approved'
PAYMENT_REJECTED = 'payment.rejected'
ORDER_IN_PRODUCTION = 'order.inProduction'
ORDER_SHIPPED = 'order.shipped'
ORDER_COMPLETED = 'order.completed'
ORDER_CANCELLED = 'order.cancelled'
ORDER_ARCHIVED = 'order.archived'
ORDER_UNARCHIVED = 'order.unarchived'

# Channel routing per event, consumed by the fan-out services
EVENT_CHANNELS = {
    ORDER_CREATED: {'customer': ['email'], 'admin': []},
    PAYMENT_PROOF_RECEIVED: {'customer': ['email'], 'admin': ['telegram']},
    PAYMENT_APPROVED: {'customer': ['email'], 'admin': ['telegram']},
    PAYMENT_REJECTED: {'customer': ['email'], 'admin': ['telegram']},
    ORDER_IN_PRODUCTION: {'customer': ['email'], 'admin': ['telegram']},
    ORDER_SHIPPED: {'customer': ['email'], 'admin': ['telegram']},
    ORDER_COMPLETED: {'customer': ['email'], 'admin': []},
    ORDER_CANCELLED: {'customer': ['email'], 'admin': ['telegram']},
    ORDER_ARCHIVED: {'customer': [], 'admin': []},
    ORDER_UNARCHIVED: {'customer': [], 'admin': []},
}


def build_order_snapshot(order):
    """JSON-safe view of an order, its items, totals and payment proof."""
    items = []
    for item in order.items.select_related('variant__product'):
        variant = item.variant
        items.append({
            'variant_id': variant.pk,
            'sku': variant.sku,
            'name': variant.product.name,
            'size': variant.size,
            'color': variant.color,
            'quantity': item.quantity,
            'unit_price': str(item.unit_price),
        })

    snapshot = {
        'id': str(order.pk),
        'short_id': order.short_id,
        'status': order.status,
        'order_type': order.order_type,
        'customer': order.customer_contact(),
        'shipping_address': order.shipping_address or {},
        'tracking_number': order.tracking_number,
        'shipping_provider': order.shipping_provider,
        'items': items,
        'total': str(order.get_subtotal()),
        'payment_proof': None,
    }

    proof = PaymentProof.objects.filter(order=order).first()
    if proof is not None:
        snapshot['payment_proof'] = {
            'method': proof.method,
            'reference': proof.reference,
            'review_status': proof.review_status,
            'reason': proof.reason,
        }
    return snapshot


class NotificationDispatcher:

    def notify(self, event_name, order_snapshot, extra=None):
        channels = EVENT_CHANNELS.get(event_name)
        if channels is None:
            logger.warning(f"[Notifications] Unknown notification event: {event_name}")
            return

        event_data = {
            'event': event_name,
            'channels': channels,
            'order': order_snapshot,
            'extra': extra or {},
        }
        try:
            task = dispatch_notification.delay(event_data)
            logger.info(
                f"[Notifications] Queued {event_name} for order {order_snapshot.get('id')} "
                f"(task {task.id})"
            )
        except Exception as e:
            logger.error(
                f"[Notifications] Failed to queue {event_name} for order "
                f"{order_snapshot.get('id')}: {e}",
                exc_info=True,
            )


def emit_after_commit(notifier, event_name, order, extra=None):
    """
    Snapshot ``order`` now and notify once the surrounding transaction
    commits. Rolled-back mutations never notify; notification errors never
    reach the caller.
    """
    try:
        snapshot = build_order_snapshot(order)
    except Exception as e:
        logger.error(f"[Notifications] Could not snapshot order {order.pk} for {event_name}: {e}", exc_info=True)
        return

    def _send():
        try:
            notifier.notify(event_name, snapshot, extra)
        except Exception as e:
            logger.error(f"[Notifications] {event_name} for order {order.pk} failed: {e}", exc_info=True)

    transaction.on_commit(_send)
