from payments.ports import BuyerInfo, LineItem, OrderPaymentPort, PayableOrder

from .models import OrderStatus
from .state_machine import PAID_OR_LATER


class OrderPaymentAdapter(OrderPaymentPort):
    """Exposes orders to the payment orchestrator."""

    def __init__(self, order_service, proof_service):
        self.order_service = order_service
        self.proof_service = proof_service

    def get_payable_order(self, order_id):
        order = self.order_service.get(order_id)
        contact = order.customer_contact()

        items = [
            LineItem(
                name=item.variant.product.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                size=item.variant.size,
                color=item.variant.color,
            )
            for item in order.items.all()
        ]

        return PayableOrder(
            order_id=str(order.pk),
            short_id=order.short_id,
            status=order.status,
            settled=order.status in PAID_OR_LATER,
            closed=order.status in (OrderStatus.CANCELLED, OrderStatus.ARCHIVED),
            buyer=BuyerInfo(name=contact['name'], email=contact['email'], phone=contact['phone']),
            items=items,
        )

    def record_payment_result(self, order_id, method, reference, review_status, reason=None):
        return self.proof_service.record_gateway_result(
            order_id,
            method=method,
            reference=reference,
            review_status=review_status,
            reason=reason,
        )
