"""
Payment proof review: the manual reconciliation path, and the single entry
point through which gateway webhook outcomes are recorded as well.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from storefront.exceptions import InvalidState

from . import notifications
from .exceptions import OrderNotFound
from .models import Order, OrderStatus, PaymentProof, ReviewStatus
from .state_machine import PAID_OR_LATER, get_order_for_update

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (OrderStatus.CANCELLED, OrderStatus.ARCHIVED)


class ProofService:

    def __init__(self, status_machine, storage, notifier):
        self.status_machine = status_machine
        self.storage = storage
        self.notifier = notifier

    def submit_proof(self, order_id, image, method, reference=None):
        """
        Store a customer-uploaded proof and mark it pending review.

        The blob is written before the order is locked so slow storage never
        holds the row lock.

        Raises:
            OrderNotFound, InvalidState (cancelled orders)
        """
        self._ensure_open(order_id)
        storage_ref = self.storage.store(image, order_id)

        with transaction.atomic():
            order = get_order_for_update(order_id)
            if order.status == OrderStatus.CANCELLED:
                raise InvalidState(f"Order {order.short_id} is cancelled")

            # A settled order keeps its verified proof
            review_status = ReviewStatus.VERIFIED if order.status in PAID_OR_LATER else ReviewStatus.PENDING
            proof, _ = self.update_payment_proof(
                order,
                storage_ref=storage_ref,
                method=method,
                reference=reference,
                review_status=review_status,
            )
            notifications.emit_after_commit(
                self.notifier,
                notifications.PAYMENT_PROOF_RECEIVED,
                order,
                {'method': proof.method, 'reference': proof.reference},
            )

        logger.info(f"[Proofs] Payment proof received for order {order_id} ({method})")
        return proof

    def review_proof(self, order_id, decision, reason=None):
        """
        Admin decision on a payment proof.

        Args:
            decision: 'verified' or 'rejected'
            reason: shown to the customer on rejection

        Returns:
            Order
        """
        if decision not in (ReviewStatus.VERIFIED, ReviewStatus.REJECTED):
            raise InvalidState(f"Unknown review decision: {decision}")

        with transaction.atomic():
            order = get_order_for_update(order_id)
            if order.status == OrderStatus.CANCELLED:
                raise InvalidState(f"Order {order.short_id} is cancelled")

            proof, previous = self.update_payment_proof(order, review_status=decision, reason=reason)
            self._settle(order, proof, previous)

        logger.info(f"[Proofs] Proof of order {order_id} reviewed: {decision}")
        return order

    def record_gateway_result(self, order_id, method, reference, review_status, reason=None):
        """
        Record a verified gateway outcome (webhook) through the same path as
        admin review.

        Settled orders are never touched again, so replays and late
        failed/deferred events are no-ops.

        Returns:
            bool: True if anything was recorded
        """
        with transaction.atomic():
            order = get_order_for_update(order_id)

            if order.status in PAID_OR_LATER:
                logger.info(
                    f"[Proofs] Order {order.pk} already {order.status}, "
                    f"ignoring {review_status} result from {method}"
                )
                return False
            if order.status in CLOSED_STATUSES:
                logger.warning(
                    f"[Proofs] Order {order.pk} is {order.status}, ignoring {review_status} result from {method}"
                )
                return False

            proof, previous = self.update_payment_proof(
                order,
                method=method,
                reference=reference,
                review_status=review_status,
                reason=reason,
            )
            self._settle(order, proof, previous)
        return True

    def update_payment_proof(self, order, storage_ref=None, method=None, reference=None,
                             review_status=None, reason=None):
        """
        Merge new fields over the order's proof record. The order must be
        locked by the caller.

        Unspecified fields keep their previous value; ``reason`` is cleared
        when the proof becomes verified unless a new one is given.

        Returns:
            tuple: (PaymentProof, previous review status or None)
        """
        proof = PaymentProof.objects.filter(order=order).first()
        previous = proof.review_status if proof else None
        if proof is None:
            proof = PaymentProof(order=order)

        if storage_ref:
            proof.storage_ref = storage_ref
        if method:
            proof.method = method
        if reference:
            proof.reference = reference

        proof.review_status = review_status or previous or ReviewStatus.PENDING

        if reason is not None:
            proof.reason = reason
        elif proof.review_status == ReviewStatus.VERIFIED:
            proof.reason = ''

        proof.save()
        return proof, previous

    def _settle(self, order, proof, previous):
        if proof.review_status == ReviewStatus.VERIFIED:
            transitioned = self.status_machine.confirm_payment(order)
            if not transitioned and previous != ReviewStatus.VERIFIED:
                notifications.emit_after_commit(self.notifier, notifications.PAYMENT_APPROVED, order)

        elif proof.review_status == ReviewStatus.REJECTED and previous != ReviewStatus.REJECTED:
            notifications.emit_after_commit(
                self.notifier,
                notifications.PAYMENT_REJECTED,
                order,
                {'reason': proof.reason},
            )

    @staticmethod
    def _ensure_open(order_id):
        try:
            status = Order.objects.values_list('status', flat=True).get(pk=order_id)
        except (Order.DoesNotExist, ValidationError, ValueError):
            raise OrderNotFound(f"Order {order_id} not found")
        if status == OrderStatus.CANCELLED:
            raise InvalidState("Order is cancelled")
