from storefront.exceptions import InvalidState, NotFound, StorefrontError


class OrderNotFound(NotFound):
    """Order not found"""
    code = 'order_not_found'


class VariantNotFound(NotFound):
    """Variant not found"""
    code = 'variant_not_found'

    def __init__(self, variant_id):
        self.variant_id = variant_id
        super().__init__(f"Variant {variant_id} not found")


class OutOfStock(StorefrontError):
    """Insufficient stock"""
    code = 'out_of_stock'
    status_code = 409

    def __init__(self, variant_id, requested, available=None):
        self.variant_id = variant_id
        self.requested = requested
        self.available = available
        message = f"Insufficient stock for variant {variant_id}: requested {requested}"
        if available is not None:
            message += f", available {available}"
        super().__init__(message)


class PriceUnavailable(StorefrontError):
    """Catalog entry has no price"""
    code = 'price_unavailable'
    status_code = 409

    def __init__(self, variant_id):
        self.variant_id = variant_id
        super().__init__(f"Price not found for variant {variant_id}")


class AlreadyCancelled(InvalidState):
    """Order is already cancelled"""
    code = 'already_cancelled'
