"""
Shared fixtures: catalog factories, a recording notifier, in-memory proof
storage and a scripted gateway, wired through ``build_services``.
"""
import itertools
from decimal import Decimal

import pytest
from django.core.cache import cache

from catalog.models import Product, Variant
from orders.owners import GuestOwner, RegisteredOwner
from orders.services import OrderLine
from orders.storage import ProofStorage
from payments.gateways import ManualGateway
from payments.gateways.base import PaymentGateway, PaymentResponse, WebhookEvent
from storefront.wiring import build_services

_counter = itertools.count(1)


class RecordingNotifier:
    """Collects notify() calls instead of queueing Celery tasks."""

    def __init__(self):
        self.events = []

    def notify(self, event_name, order_snapshot, extra=None):
        self.events.append((event_name, order_snapshot, extra))

    def names(self):
        return [name for name, _, _ in self.events]

    def count(self, event_name):
        return self.names().count(event_name)


class MemoryProofStorage(ProofStorage):

    def __init__(self):
        self.blobs = {}

    def store(self, raw_blob, order_id):
        ref = f"memory/{order_id}/{len(self.blobs) + 1}"
        self.blobs[ref] = raw_blob
        return ref


class ScriptedGateway(PaymentGateway):
    """
    Test double: records initiate_payment calls, accepts the signature
    'good' and reads the WebhookEvent fields straight from the payload.
    """

    name = 'scripted'

    def __init__(self, settlement_currencies=frozenset()):
        super().__init__(timeout=1)
        self.settlement_currencies = settlement_currencies
        self.calls = []

    def initiate_payment(self, amount, currency, order_id, buyer, shipping_cost, line_items):
        self.calls.append({
            'amount': amount,
            'currency': currency,
            'order_id': order_id,
            'buyer': buyer,
            'shipping_cost': shipping_cost,
            'line_items': line_items,
        })
        return PaymentResponse(success=True, redirect_url='https://pay.example/checkout', transaction_id='tx-1')

    def verify_webhook(self, payload, signature):
        return signature == 'good'

    def parse_event(self, payload):
        if payload.get('explode'):
            raise RuntimeError('malformed payload')
        return WebhookEvent(
            kind=payload['kind'],
            order_id=payload.get('order_id'),
            reference=payload.get('reference', ''),
            reason=payload.get('reason', ''),
            event_type=payload.get('type', ''),
        )


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def proof_storage():
    return MemoryProofStorage()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def usd_gateway():
    return ScriptedGateway(settlement_currencies=frozenset({'USD'}))


@pytest.fixture
def services(notifier, proof_storage, gateway, usd_gateway):
    return build_services(
        notifier=notifier,
        storage=proof_storage,
        gateways={
            'scripted': gateway,
            'usd': usd_gateway,
            'manual': ManualGateway(frontend_url='https://shop.example'),
        },
    )


@pytest.fixture
def make_variant():
    def _make(stock=5, price=Decimal('10000.00'), name='Tote bag', size='M', color='Black'):
        n = next(_counter)
        product = Product.objects.create(name=f"{name} {n}", slug=f"product-{n}", price=price)
        return Variant.objects.create(product=product, sku=f"SKU-{n}", size=size, color=color, stock=stock)
    return _make


@pytest.fixture
def guest():
    return GuestOwner(name='Ana Mora', contact='88887777', email='ana@example.com')


@pytest.fixture
def customer(django_user_model):
    return django_user_model.objects.create_user(
        username='maria', email='maria@example.com', password='secret', first_name='Maria', last_name='Solis'
    )


@pytest.fixture
def staff(django_user_model):
    return django_user_model.objects.create_user(
        username='admin', email='admin@example.com', password='secret', is_staff=True
    )


@pytest.fixture
def place_order(services, make_variant, guest):
    """Create an order for one fresh variant; returns (order, variant)."""
    def _place(quantity=1, stock=5, price=Decimal('10000.00'), owner=None, **kwargs):
        variant = make_variant(stock=stock, price=price)
        order = services.orders.create(
            [OrderLine(variant_id=variant.pk, quantity=quantity)],
            owner or guest,
            shipping_address={'street': 'Calle 1', 'city': 'San Jose', 'phone': '8888-7777'},
            **kwargs,
        )
        return order, variant
    return _place


@pytest.fixture
def registered(customer):
    return RegisteredOwner(user_id=customer.pk)
