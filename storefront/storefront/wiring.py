"""
Explicit composition of the order and payment components.

Views, admin actions and tests obtain services from ``get_services()``;
tests may call ``build_services()`` with their own collaborators.
"""
from dataclasses import dataclass
from functools import lru_cache

from orders.adapters import OrderPaymentAdapter
from orders.ledger import StockLedger
from orders.notifications import NotificationDispatcher
from orders.proofs import ProofService
from orders.services import OrderService
from orders.state_machine import OrderStatusMachine
from orders.storage import DjangoFileProofStorage
from payments.gateways import build_gateways
from payments.idempotency import WebhookDeduplicator
from payments.services import PaymentOrchestrator


@dataclass(frozen=True)
class Services:
    ledger: StockLedger
    status_machine: OrderStatusMachine
    orders: OrderService
    proofs: ProofService
    payments: PaymentOrchestrator


def build_services(notifier=None, storage=None, gateways=None, deduplicator=None):
    notifier = notifier or NotificationDispatcher()
    ledger = StockLedger()
    status_machine = OrderStatusMachine(ledger, notifier)
    orders = OrderService(ledger, status_machine, notifier)
    proofs = ProofService(status_machine, storage or DjangoFileProofStorage(), notifier)
    payments = PaymentOrchestrator(
        OrderPaymentAdapter(orders, proofs),
        gateways if gateways is not None else build_gateways(),
        deduplicator=deduplicator or WebhookDeduplicator(),
    )
    return Services(
        ledger=ledger,
        status_machine=status_machine,
        orders=orders,
        proofs=proofs,
        payments=payments,
    )


@lru_cache(maxsize=1)
def get_services():
    return build_services()
