"""
PayPal wallet/redirect gateway (Orders v2 API, intent CAPTURE).

PayPal cannot settle CRC, so the orchestrator hands this gateway amounts
already converted to USD.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal

import requests
from django.conf import settings
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from payments.exceptions import GatewayUnavailable

from .base import (
    APPROVED_PENDING_CAPTURE,
    DEFERRED,
    FAILED,
    IGNORED,
    SUCCEEDED,
    PaymentGateway,
    PaymentResponse,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

LIVE_URL = 'https://api-m.paypal.com'
SANDBOX_URL = 'https://api-m.sandbox.paypal.com'

TRANSMISSION_HEADERS = {
    'auth_algo': 'PAYPAL-AUTH-ALGO',
    'cert_url': 'PAYPAL-CERT-URL',
    'transmission_id': 'PAYPAL-TRANSMISSION-ID',
    'transmission_sig': 'PAYPAL-TRANSMISSION-SIG',
    'transmission_time': 'PAYPAL-TRANSMISSION-TIME',
}


def money(amount):
    return str(Decimal(amount).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


class PaypalGateway(PaymentGateway):
    name = 'paypal'
    settlement_currencies = frozenset({'USD'})

    def __init__(self, client_id=None, client_secret=None, webhook_id=None, mode=None,
                 frontend_url=None, brand_name=None, timeout=None):
        super().__init__(timeout=timeout)
        self.client_id = settings.PAYPAL_CLIENT_ID if client_id is None else client_id
        self.client_secret = settings.PAYPAL_CLIENT_SECRET if client_secret is None else client_secret
        self.webhook_id = settings.PAYPAL_WEBHOOK_ID if webhook_id is None else webhook_id
        self.base_url = LIVE_URL if (mode or settings.PAYPAL_MODE) == 'live' else SANDBOX_URL
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip('/')
        self.brand_name = brand_name or settings.PAYPAL_BRAND_NAME

    # ========================
    # AUTH
    # ========================

    def get_access_token(self):
        if not self.client_id or not self.client_secret:
            logger.error("[PayPal] PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET not configured")
            raise GatewayUnavailable("PayPal is not configured")

        try:
            response = self._request_token()
        except requests.RequestException as e:
            logger.error(f"[PayPal] Could not obtain access token: {e}", exc_info=True)
            raise GatewayUnavailable("PayPal authentication is unavailable")

        if response.status_code >= 500:
            raise GatewayUnavailable(f"PayPal authentication answered {response.status_code}")
        if not response.ok:
            logger.error(f"[PayPal] Authentication failed ({response.status_code}): {self._json(response)}")
            raise GatewayUnavailable("PayPal authentication failed")
        token = self._json(response).get('access_token')
        if not token:
            logger.error("[PayPal] Authentication response carried no access token")
            raise GatewayUnavailable("PayPal authentication returned no token")
        return token

    @retry(
        retry=retry_if_exception_type((requests.Timeout, requests.ConnectionError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    def _request_token(self):
        return requests.post(
            f"{self.base_url}/v1/oauth2/token",
            data={'grant_type': 'client_credentials'},
            auth=(self.client_id, self.client_secret),
            timeout=self.timeout,
        )

    # ========================
    # CHECKOUT
    # ========================

    def initiate_payment(self, amount, currency, order_id, buyer, shipping_cost, line_items):
        token = self.get_access_token()

        item_total = Decimal(money(amount))
        shipping = Decimal(money(shipping_cost or 0))

        payload = {
            'intent': 'CAPTURE',
            'purchase_units': [{
                'reference_id': order_id,
                'custom_id': order_id,
                'amount': {
                    'currency_code': currency,
                    'value': money(item_total + shipping),
                    'breakdown': {
                        'item_total': {'currency_code': currency, 'value': money(item_total)},
                        'shipping': {'currency_code': currency, 'value': money(shipping)},
                    },
                },
                'description': f"Order #{order_id[-6:].upper()} at {self.brand_name}",
            }],
            'application_context': {
                'brand_name': self.brand_name,
                'landing_page': 'NO_PREFERENCE',
                'user_action': 'PAY_NOW',
                'return_url': f"{self.frontend_url}/store/checkout/success?orderId={order_id}",
                'cancel_url': f"{self.frontend_url}/store/checkout?orderId={order_id}&payment=cancelled",
            },
        }

        logger.info(f"[PayPal] Creating order for {order_id}: {payload['purchase_units'][0]['amount']['value']} {currency}")
        response = self._post(
            f"{self.base_url}/v2/checkout/orders",
            json=payload,
            headers={'Authorization': f"Bearer {token}"},
        )
        data = self._json(response)

        if not response.ok:
            logger.error(f"[PayPal] Order creation rejected ({response.status_code}): {data}")
            return PaymentResponse(success=False, metadata=data)

        approve = next((link for link in data.get('links', []) if link.get('rel') == 'approve'), None)
        if approve is None:
            logger.error(f"[PayPal] No approval link returned for order {order_id}")
            return PaymentResponse(success=False, metadata=data)

        return PaymentResponse(
            success=True,
            redirect_url=approve['href'],
            transaction_id=data.get('id'),
            metadata={'paypal_order_id': data.get('id'), 'currency': currency},
        )

    # ========================
    # WEBHOOKS
    # ========================

    def signature_from_headers(self, headers):
        return {field: headers.get(header) for field, header in TRANSMISSION_HEADERS.items()}

    def verify_webhook(self, payload, signature):
        """Verify through PayPal's verify-webhook-signature API."""
        if not payload or not signature:
            return False
        if not self.webhook_id:
            logger.error("[PayPal] PAYPAL_WEBHOOK_ID not configured, rejecting webhook")
            return False
        missing = [field for field in TRANSMISSION_HEADERS if not signature.get(field)]
        if missing:
            logger.warning(f"[PayPal] Webhook missing transmission headers: {missing}")
            return False

        try:
            token = self.get_access_token()
            response = self._post(
                f"{self.base_url}/v1/notifications/verify-webhook-signature",
                json={**signature, 'webhook_id': self.webhook_id, 'webhook_event': payload},
                headers={'Authorization': f"Bearer {token}"},
            )
        except GatewayUnavailable as e:
            # Unverifiable now; PayPal redelivers rejected webhooks
            logger.error(f"[PayPal] Could not verify webhook: {e}")
            return False

        status = self._json(response).get('verification_status')
        if response.ok and status == 'SUCCESS':
            return True
        logger.warning(f"[PayPal] Webhook verification failed: {status}")
        return False

    def parse_event(self, payload):
        event_type = payload.get('event_type', '')
        resource = payload.get('resource') or {}
        units = resource.get('purchase_units') or [{}]
        order_id = resource.get('custom_id') or units[0].get('custom_id') or units[0].get('reference_id')

        if not order_id:
            logger.warning(f"[PayPal] Webhook {event_type} without order reference")
            return WebhookEvent(kind=IGNORED, event_type=event_type)

        reason = (resource.get('status_details') or {}).get('reason')

        if event_type == 'CHECKOUT.ORDER.APPROVED':
            return WebhookEvent(
                kind=APPROVED_PENDING_CAPTURE, order_id=order_id, reference=resource.get('id', ''), event_type=event_type
            )
        if event_type == 'PAYMENT.CAPTURE.COMPLETED':
            return WebhookEvent(kind=SUCCEEDED, order_id=order_id, reference=resource.get('id', ''), event_type=event_type)
        if event_type == 'PAYMENT.CAPTURE.DENIED':
            return WebhookEvent(
                kind=FAILED,
                order_id=order_id,
                reference=resource.get('id', ''),
                reason=reason or 'Payment capture denied',
                event_type=event_type,
            )
        if event_type == 'PAYMENT.CAPTURE.PENDING':
            return WebhookEvent(
                kind=DEFERRED,
                order_id=order_id,
                reference=resource.get('id', ''),
                reason=reason or 'Capture pending at PayPal',
                event_type=event_type,
            )
        return WebhookEvent(kind=IGNORED, order_id=order_id, event_type=event_type)
