"""
Stock Ledger: the only writer of ``Variant.stock``.

Debits and credits are single conditional UPDATE statements so that two
concurrent orders can never both pass a stale "enough stock" check.
"""
import logging

from django.db.models import F

from catalog.models import Variant

from .exceptions import OutOfStock, VariantNotFound

logger = logging.getLogger(__name__)


class StockLedger:

    def debit(self, variant_id, quantity):
        """
        Decrement stock if and only if enough units remain.

        Raises:
            OutOfStock: fewer than ``quantity`` units available
            VariantNotFound: no such variant
        """
        self._check_quantity(quantity)

        updated = Variant.objects.filter(pk=variant_id, stock__gte=quantity).update(
            stock=F('stock') - quantity
        )
        if updated:
            logger.debug(f"[Ledger] Debited {quantity} from variant {variant_id}")
            return

        available = Variant.objects.filter(pk=variant_id).values_list('stock', flat=True).first()
        if available is None:
            raise VariantNotFound(variant_id)
        raise OutOfStock(variant_id, quantity, available)

    def credit(self, variant_id, quantity):
        self._check_quantity(quantity)

        updated = Variant.objects.filter(pk=variant_id).update(stock=F('stock') + quantity)
        if not updated:
            raise VariantNotFound(variant_id)
        logger.debug(f"[Ledger] Credited {quantity} to variant {variant_id}")

    def available(self, variant_id):
        stock = Variant.objects.filter(pk=variant_id).values_list('stock', flat=True).first()
        if stock is None:
            raise VariantNotFound(variant_id)
        return stock

    @staticmethod
    def _check_quantity(quantity):
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValueError(f"Quantity must be a positive integer, got {quantity!r}")
