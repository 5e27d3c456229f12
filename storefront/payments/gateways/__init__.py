from django.db import models

from .manual import ManualGateway
from .onvopay import OnvopayGateway
from .paypal import PaypalGateway


class PaymentMethod(models.TextChoices):
    ONVOPAY = 'onvopay', 'Onvopay (card)'
    PAYPAL = 'paypal', 'PayPal'
    MANUAL = 'manual', 'Bank transfer / SINPE'


def build_gateways():
    return {
        PaymentMethod.ONVOPAY.value: OnvopayGateway(),
        PaymentMethod.PAYPAL.value: PaypalGateway(),
        PaymentMethod.MANUAL.value: ManualGateway(),
    }
