import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import requests
from django.conf import settings

from payments.exceptions import GatewayUnavailable

logger = logging.getLogger(__name__)

# Webhook classifications
SUCCEEDED = 'succeeded'
FAILED = 'failed'
DEFERRED = 'deferred'
APPROVED_PENDING_CAPTURE = 'approved_pending_capture'
IGNORED = 'ignored'


@dataclass
class PaymentResponse:
    success: bool
    redirect_url: str = None
    transaction_id: str = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            'success': self.success,
            'redirect_url': self.redirect_url,
            'transaction_id': self.transaction_id,
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class WebhookEvent:
    kind: str
    order_id: str = None
    reference: str = ''
    reason: str = ''
    event_type: str = ''


class PaymentGateway(ABC):
    name = None
    # Currencies the gateway can settle in; empty means any
    settlement_currencies = frozenset()
    accepts_webhooks = True

    def __init__(self, timeout=None):
        self.timeout = settings.PAYMENT_GATEWAY_TIMEOUT if timeout is None else timeout

    def can_settle(self, currency):
        return not self.settlement_currencies or currency in self.settlement_currencies

    @abstractmethod
    def initiate_payment(self, amount, currency, order_id, buyer, shipping_cost, line_items):
        """
        Start a checkout with the provider.

        Args:
            amount: Decimal item subtotal, already in ``currency``
            currency: ISO code the provider will settle in
            order_id: str
            buyer: BuyerInfo
            shipping_cost: Decimal, already in ``currency``
            line_items: list of LineItem priced in ``currency``

        Returns:
            PaymentResponse

        Raises:
            GatewayUnavailable: timeout, connection error or 5xx
        """

    @abstractmethod
    def verify_webhook(self, payload, signature):
        """Return True only if the webhook provably came from the provider."""

    @abstractmethod
    def parse_event(self, payload):
        """Classify a verified webhook payload into a WebhookEvent."""

    def signature_from_headers(self, headers):
        return None

    # ========================
    # HTTP
    # ========================

    def _post(self, url, **kwargs):
        """POST with the configured timeout; provider outages raise GatewayUnavailable."""
        try:
            response = requests.post(url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            logger.error(f"[{self.name}] Request to {url} timed out after {self.timeout}s")
            raise GatewayUnavailable(f"{self.name} did not answer within {self.timeout}s")
        except requests.ConnectionError as e:
            logger.error(f"[{self.name}] Connection error calling {url}: {e}")
            raise GatewayUnavailable(f"{self.name} is unreachable")
        except requests.RequestException as e:
            logger.error(f"[{self.name}] Request to {url} failed: {e}", exc_info=True)
            raise GatewayUnavailable(f"{self.name} request failed")

        if response.status_code >= 500:
            logger.error(f"[{self.name}] {url} answered {response.status_code}")
            raise GatewayUnavailable(f"{self.name} answered {response.status_code}")
        return response

    @staticmethod
    def _json(response):
        try:
            return response.json()
        except ValueError:
            return {'raw': response.text}
