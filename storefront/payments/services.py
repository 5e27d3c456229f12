"""
Payment orchestration: checkout initiation against the gateways and
reconciliation of their webhooks back onto orders.
"""
import logging
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

from storefront.exceptions import InvalidState

from . import ports
from .exceptions import AlreadySettled, ExchangeRateMissing, UnsupportedPaymentMethod, UnverifiedWebhook
from .gateways import PaymentMethod
from .gateways.base import APPROVED_PENDING_CAPTURE, DEFERRED, FAILED, IGNORED, SUCCEEDED
from .idempotency import WebhookDeduplicator

logger = logging.getLogger(__name__)

OUTCOME_REVIEW_STATUS = {
    SUCCEEDED: ports.VERIFIED,
    FAILED: ports.REJECTED,
    DEFERRED: ports.PENDING,
}


class PaymentOrchestrator:

    def __init__(self, orders, gateways, deduplicator=None, currency=None, exchange_rates=None,
                 free_shipping_threshold=None, flat_shipping_cost=None):
        """
        Args:
            orders: OrderPaymentPort implementation
            gateways: dict of method name -> PaymentGateway
        """
        self.orders = orders
        self.gateways = gateways
        self.deduplicator = deduplicator or WebhookDeduplicator()
        self.currency = currency or settings.STORE_CURRENCY
        self.exchange_rates = exchange_rates or settings.CURRENCY_EXCHANGE_RATES
        self.free_shipping_threshold = (
            settings.SHIPPING_FREE_THRESHOLD if free_shipping_threshold is None else free_shipping_threshold
        )
        self.flat_shipping_cost = settings.SHIPPING_FLAT_COST if flat_shipping_cost is None else flat_shipping_cost

    # ========================
    # CHECKOUT
    # ========================

    def initiate_payment(self, order_id, method):
        """
        Start a checkout for an unpaid order. Never mutates the order.

        Returns:
            PaymentResponse

        Raises:
            OrderNotFound, AlreadySettled, InvalidState,
            UnsupportedPaymentMethod, GatewayUnavailable
        """
        order = self.orders.get_payable_order(order_id)

        if order.settled:
            raise AlreadySettled(f"Order {order.short_id} is already paid")
        if order.closed:
            raise InvalidState(f"Order {order.short_id} is {order.status}")

        gateway = self.gateways.get(method)
        if gateway is None:
            raise UnsupportedPaymentMethod(method)

        if method == PaymentMethod.MANUAL:
            return gateway.initiate_payment(order.subtotal, self.currency, order.order_id, order.buyer, 0, [])

        subtotal = order.subtotal
        shipping = self.shipping_cost(subtotal)
        items = list(order.items)
        currency = self.currency

        if not gateway.can_settle(currency):
            target = sorted(gateway.settlement_currencies)[0]
            logger.info(f"[Payments] {gateway.name} cannot settle {currency}, converting order {order.order_id} to {target}")
            subtotal = self.convert(subtotal, target)
            shipping = self.convert(shipping, target)
            items = [replace(item, unit_price=self.convert(item.unit_price, target)) for item in items]
            currency = target

        logger.info(
            f"[Payments] Initiating {method} payment for order {order.order_id}: "
            f"{subtotal} {currency} + shipping {shipping}"
        )
        return gateway.initiate_payment(subtotal, currency, order.order_id, order.buyer, shipping, items)

    def shipping_cost(self, subtotal):
        return Decimal('0') if subtotal >= self.free_shipping_threshold else Decimal(self.flat_shipping_cost)

    def convert(self, amount, target_currency):
        rate = self.exchange_rates.get(target_currency)
        if not rate:
            logger.error(f"[Payments] CURRENCY_EXCHANGE_RATES has no rate for {target_currency}")
            raise ExchangeRateMissing(target_currency)
        return (Decimal(amount) / Decimal(rate)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    # ========================
    # WEBHOOKS
    # ========================

    def handle_webhook(self, gateway_name, payload, signature):
        """
        Reconcile a provider webhook onto its order.

        Always acknowledges, except when the signature cannot be verified.

        Raises:
            UnverifiedWebhook
        """
        gateway = self.gateways.get(gateway_name)
        if gateway is None or not gateway.accepts_webhooks:
            logger.error(f"[Webhook] Webhook received for unknown gateway: {gateway_name}")
            return {'received': False}

        try:
            verified = gateway.verify_webhook(payload, signature)
        except Exception as e:
            logger.error(f"[Webhook] Could not verify {gateway_name} webhook: {e}", exc_info=True)
            verified = False

        if not verified:
            logger.warning(f"[Webhook] Invalid signature for {gateway_name} webhook")
            raise UnverifiedWebhook(f"Invalid {gateway_name} webhook signature")

        try:
            event = gateway.parse_event(payload)
            logger.info(f"[Webhook] {gateway_name} {event.event_type} classified as {event.kind} (order {event.order_id})")

            if event.kind == IGNORED or not event.order_id:
                return {'received': True, 'processed': False, 'event': event.event_type}

            if event.kind == APPROVED_PENDING_CAPTURE:
                return {'received': True, 'processed': True, 'status': 'approved', 'order_id': event.order_id}

            if self.deduplicator.seen(gateway_name, event):
                return {'received': True, 'processed': False, 'duplicate': True, 'order_id': event.order_id}

            recorded = self.orders.record_payment_result(
                event.order_id,
                method=gateway.name,
                reference=event.reference,
                review_status=OUTCOME_REVIEW_STATUS[event.kind],
                reason=event.reason or None,
            )
            self.deduplicator.mark(gateway_name, event)

            return {'received': True, 'processed': recorded, 'status': event.kind, 'order_id': event.order_id}

        except Exception as e:
            logger.error(f"[Webhook] Error processing {gateway_name} webhook: {e}", exc_info=True)
            return {'received': True, 'processed': False, 'error': str(e)}
