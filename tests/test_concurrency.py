"""
Concurrent writers against one variant / one order, each on its own
database connection.

SQLite reports contention as "database table is locked" instead of
blocking, so workers retry those attempts; every retry is a fresh
transaction.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import OperationalError, connections
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_random

from orders.exceptions import OutOfStock
from orders.models import OrderStatus, PaymentProof, ReviewStatus
from orders.services import OrderLine

pytestmark = pytest.mark.django_db(transaction=True)


def is_lock_contention(exc):
    return isinstance(exc, OperationalError) and 'locked' in str(exc)


@retry(
    retry=retry_if_exception(is_lock_contention),
    stop=stop_after_attempt(100),
    wait=wait_random(min=0.005, max=0.05),
    reraise=True,
)
def attempt(operation):
    return operation()


def run_together(operations):
    """Start every operation at the same moment, one thread each; returns their results."""
    barrier = threading.Barrier(len(operations))

    def worker(operation):
        barrier.wait()
        try:
            return attempt(operation)
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=len(operations)) as pool:
        return list(pool.map(worker, operations))


class TestConcurrentOrderCreation:

    def test_stock_is_never_oversold(self, services, make_variant, guest):
        """Should sell exactly the available units and refuse the rest."""
        variant = make_variant(stock=3)

        def place():
            try:
                services.orders.create([OrderLine(variant_id=variant.pk, quantity=1)], guest)
                return 'created'
            except OutOfStock:
                return 'out_of_stock'

        outcomes = run_together([place] * 8)

        variant.refresh_from_db()
        assert variant.stock == 0
        assert outcomes.count('created') == 3
        assert outcomes.count('out_of_stock') == 5

    def test_multi_unit_orders_do_not_drive_stock_negative(self, services, make_variant, guest):
        """Should never debit more than the stock on hand."""
        variant = make_variant(stock=5)

        def place():
            try:
                services.orders.create([OrderLine(variant_id=variant.pk, quantity=2)], guest)
                return 'created'
            except OutOfStock:
                return 'out_of_stock'

        outcomes = run_together([place] * 6)

        variant.refresh_from_db()
        assert outcomes.count('created') == 2
        assert variant.stock == 1


class TestConcurrentPaymentConfirmation:

    def test_webhook_racing_admin_review_approves_once(self, services, notifier, place_order):
        """Should end paid with a single payment.approved whichever path wins."""
        order, _ = place_order()
        payload = {'kind': 'succeeded', 'order_id': str(order.pk), 'reference': 'ch_1', 'type': 'payment.succeeded'}

        def webhook():
            ack = services.payments.handle_webhook('scripted', payload, 'good')
            # the webhook boundary turns errors into an acknowledgment
            if 'locked' in ack.get('error', ''):
                raise OperationalError(ack['error'])
            return ack

        def review():
            return services.proofs.review_proof(order.pk, 'verified')

        run_together([webhook, review])

        assert services.orders.get(order.pk).status == OrderStatus.PAID
        assert PaymentProof.objects.get(order_id=order.pk).review_status == ReviewStatus.VERIFIED
        assert notifier.count('payment.approved') == 1

    def test_replayed_webhooks_in_parallel_approve_once(self, services, notifier, place_order):
        """Should apply a burst of identical deliveries once."""
        order, _ = place_order()
        payload = {'kind': 'succeeded', 'order_id': str(order.pk), 'reference': 'ch_1', 'type': 'payment.succeeded'}

        def webhook():
            ack = services.payments.handle_webhook('scripted', payload, 'good')
            if 'locked' in ack.get('error', ''):
                raise OperationalError(ack['error'])
            return ack

        acks = run_together([webhook] * 4)

        assert all(ack['received'] for ack in acks)
        assert services.orders.get(order.pk).status == OrderStatus.PAID
        assert notifier.count('payment.approved') == 1
