from django.conf import settings

from .base import IGNORED, PaymentGateway, PaymentResponse, WebhookEvent


class ManualGateway(PaymentGateway):
    """Bank transfer / SINPE: the buyer uploads a proof from their orders page."""

    name = 'manual'
    accepts_webhooks = False

    def __init__(self, frontend_url=None):
        super().__init__(timeout=0)
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip('/')

    def initiate_payment(self, amount, currency, order_id, buyer, shipping_cost, line_items):
        return PaymentResponse(success=True, redirect_url=f"{self.frontend_url}/store/my-orders")

    def verify_webhook(self, payload, signature):
        return False

    def parse_event(self, payload):
        return WebhookEvent(kind=IGNORED)
