import logging

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


class WebhookDeduplicator:
    """
    Remembers processed webhook deliveries in the Django cache so provider
    replays are acknowledged without being applied twice.
    """

    def __init__(self, cache_backend=None, ttl=None):
        self.cache = cache_backend or cache
        self.ttl = settings.WEBHOOK_DEDUPE_TTL if ttl is None else ttl

    @staticmethod
    def key(gateway, event):
        return f"webhook:{gateway}:{event.kind}:{event.reference or event.order_id}"

    def seen(self, gateway, event):
        if self.cache.get(self.key(gateway, event)):
            logger.info(
                f"[Webhook] Duplicate {gateway} {event.kind} for order {event.order_id} "
                f"(reference {event.reference})"
            )
            return True
        return False

    def mark(self, gateway, event):
        self.cache.set(self.key(gateway, event), True, timeout=self.ttl)
