"""
Onvopay online-card gateway: hosted one-time checkout links.

Amounts are sent in minor units (cents). The webhook secret is delivered
verbatim in the ``X-Webhook-Secret`` header.
"""
import hmac
import logging
import re
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

from .base import DEFERRED, FAILED, IGNORED, SUCCEEDED, PaymentGateway, PaymentResponse, WebhookEvent

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = {'checkout-session.succeeded', 'payment-intent.succeeded', 'payment_intent.succeeded'}
FAILED_EVENTS = {'payment-intent.failed', 'payment_intent.failed'}
FAILED_STATUSES = {'failed', 'requires_payment_method'}
DEFERRED_EVENTS = {'payment-intent.deferred'}


def to_minor_units(amount):
    return int((Decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def normalize_phone(phone):
    """Local numbers get the Costa Rica prefix; empty stays empty."""
    if not phone:
        return None
    if phone.startswith('+'):
        return phone
    digits = re.sub(r'\D', '', phone)
    return f"+506{digits}" if digits else None


class OnvopayGateway(PaymentGateway):
    name = 'onvopay'

    def __init__(self, base_url=None, secret_key=None, webhook_secret=None, frontend_url=None, timeout=None):
        super().__init__(timeout=timeout)
        self.base_url = (base_url or settings.ONVOPAY_BASE_URL).rstrip('/')
        self.secret_key = settings.ONVOPAY_SECRET_KEY if secret_key is None else secret_key
        self.webhook_secret = settings.ONVOPAY_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip('/')

    def initiate_payment(self, amount, currency, order_id, buyer, shipping_cost, line_items):
        logger.info(
            f"[Onvopay] Initiating payment for order {order_id}: {amount} {currency}, "
            f"shipping {shipping_cost}, {len(line_items)} items"
        )

        if not self.secret_key:
            logger.error("[Onvopay] ONVOPAY_SECRET_KEY not configured")
            return PaymentResponse(success=False, metadata={'error': 'Onvopay is not configured'})

        body = {
            'redirectUrl': f"{self.frontend_url}/store/checkout/success?orderId={order_id}",
            'cancelUrl': f"{self.frontend_url}/store/checkout/cancel?orderId={order_id}",
            'lineItems': self._line_items(amount, currency, order_id, shipping_cost, line_items),
            'paymentMethodTypes': ['card'],
            'metadata': {'orderId': order_id, 'customerEmail': buyer.email},
        }
        if buyer.email:
            body['customerEmail'] = buyer.email
        if buyer.name:
            body['customerName'] = buyer.name
        phone = normalize_phone(buyer.phone)
        if phone:
            body['customerPhone'] = phone

        response = self._post(
            f"{self.base_url}/checkout/sessions/one-time-link",
            json=body,
            headers={'Authorization': f"Bearer {self.secret_key}"},
        )
        data = self._json(response)

        if not response.ok:
            logger.error(f"[Onvopay] Checkout session rejected ({response.status_code}): {data}")
            return PaymentResponse(success=False, metadata=data)

        logger.info(f"[Onvopay] Checkout session {data.get('id')} created for order {order_id}")
        return PaymentResponse(
            success=True,
            redirect_url=data.get('url'),
            transaction_id=data.get('id'),
            metadata=data,
        )

    @staticmethod
    def _line_items(amount, currency, order_id, shipping_cost, line_items):
        lines = [
            {
                'quantity': item.quantity,
                'unitAmount': to_minor_units(item.unit_price),
                'currency': currency,
                'description': item.description,
            }
            for item in line_items
        ]
        if not lines:
            lines.append({
                'quantity': 1,
                'unitAmount': to_minor_units(amount),
                'currency': currency,
                'description': f"Order #{order_id[-6:].upper()}",
            })

        # Shipping always shows, at 0 when free
        lines.append({
            'quantity': 1,
            'unitAmount': to_minor_units(shipping_cost),
            'currency': currency,
            'description': 'Free shipping' if not shipping_cost else 'Shipping',
        })
        return lines

    def signature_from_headers(self, headers):
        return headers.get('X-Webhook-Secret')

    def verify_webhook(self, payload, signature):
        if not payload:
            return False
        if not self.webhook_secret:
            logger.error("[Onvopay] ONVOPAY_WEBHOOK_SECRET not configured, rejecting webhook")
            return False
        if not signature:
            logger.warning("[Onvopay] Webhook without X-Webhook-Secret header")
            return False
        if hmac.compare_digest(str(signature).encode(), self.webhook_secret.encode()):
            return True
        logger.warning("[Onvopay] Webhook secret mismatch")
        return False

    def parse_event(self, payload):
        event_type = payload.get('type') or payload.get('event') or ''
        data = payload.get('data') or payload
        nested = data.get('object') or {}
        order_id = (data.get('metadata') or {}).get('orderId') or (nested.get('metadata') or {}).get('orderId')

        if not order_id:
            logger.warning(f"[Onvopay] Webhook {event_type} without orderId in metadata")
            return WebhookEvent(kind=IGNORED, event_type=event_type)

        status = data.get('status')

        if event_type in SUCCESS_EVENTS or status == 'succeeded' or data.get('paymentStatus') == 'paid':
            reference = data.get('paymentIntentId') or data.get('id') or nested.get('id') or ''
            return WebhookEvent(kind=SUCCEEDED, order_id=order_id, reference=reference, event_type=event_type)

        if event_type in FAILED_EVENTS or status in FAILED_STATUSES:
            reason = (data.get('error') or {}).get('message') or 'Payment failed'
            return WebhookEvent(
                kind=FAILED, order_id=order_id, reference=data.get('id') or '', reason=reason, event_type=event_type
            )

        if event_type in DEFERRED_EVENTS:
            return WebhookEvent(
                kind=DEFERRED,
                order_id=order_id,
                reference=data.get('paymentIntentId') or data.get('id') or '',
                reason='SINPE payment pending approval',
                event_type=event_type,
            )

        return WebhookEvent(kind=IGNORED, order_id=order_id, event_type=event_type)
