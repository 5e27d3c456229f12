"""
What the payment orchestrator needs from the order side.

``payments`` never imports the order services; the orders app provides an
implementation (``orders.adapters.OrderPaymentAdapter``) at wiring time.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class BuyerInfo:
    name: str = ''
    email: str = ''
    phone: str = ''


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    unit_price: Decimal
    size: str = ''
    color: str = ''

    @property
    def description(self):
        details = ' / '.join(p for p in (self.size, self.color) if p)
        return f"{self.name} ({details})" if details else self.name


@dataclass(frozen=True)
class PayableOrder:
    order_id: str
    short_id: str
    status: str
    settled: bool
    closed: bool
    buyer: BuyerInfo
    items: list = field(default_factory=list)

    @property
    def subtotal(self):
        return sum((item.unit_price * item.quantity for item in self.items), Decimal('0'))


class OrderPaymentPort(ABC):

    @abstractmethod
    def get_payable_order(self, order_id):
        """
        Returns:
            PayableOrder

        Raises:
            OrderNotFound
        """

    @abstractmethod
    def record_payment_result(self, order_id, method, reference, review_status, reason=None):
        """
        Record a verified gateway outcome against the order.

        Returns:
            bool: False when the order was already settled (nothing changed)
        """


# Review statuses the order side records for a gateway outcome
VERIFIED = 'verified'
REJECTED = 'rejected'
PENDING = 'pending'
