from storefront.exceptions import InvalidState, StorefrontError


class AlreadySettled(InvalidState):
    """Order is already paid"""
    code = 'already_settled'
    status_code = 409


class UnsupportedPaymentMethod(StorefrontError):
    """Payment method not supported"""
    code = 'unsupported_payment_method'

    def __init__(self, method):
        self.method = method
        super().__init__(f"Payment method {method} not supported")


class UnverifiedWebhook(StorefrontError):
    """Webhook signature could not be verified"""
    code = 'unverified_webhook'
    status_code = 401


class GatewayUnavailable(StorefrontError):
    """Payment gateway could not be reached"""
    code = 'gateway_unavailable'
    status_code = 502


class ExchangeRateMissing(StorefrontError):
    """No exchange rate configured for a gateway's settlement currency"""
    code = 'exchange_rate_missing'
    status_code = 503

    def __init__(self, currency):
        self.currency = currency
        super().__init__(f"No exchange rate configured for {currency}")
