"""
Tests for checkout initiation and webhook reconciliation.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from orders.exceptions import OrderNotFound
from orders.models import LoyaltyAccount, OrderStatus, PaymentProof, ReviewStatus
from payments.exceptions import AlreadySettled, ExchangeRateMissing, UnsupportedPaymentMethod, UnverifiedWebhook
from payments.gateways import PaypalGateway
from storefront.exceptions import InvalidState
from storefront.wiring import build_services

pytestmark = pytest.mark.django_db(transaction=True)


class TestInitiatePayment:

    def test_adds_flat_shipping_below_threshold(self, services, gateway, place_order):
        order, _ = place_order(quantity=2, price=Decimal('15000.00'))

        response = services.payments.initiate_payment(str(order.pk), 'scripted')

        assert response.success is True
        call = gateway.calls[0]
        assert call['amount'] == Decimal('30000.00')
        assert call['shipping_cost'] == Decimal('2500')
        assert call['currency'] == 'CRC'
        assert call['buyer'].email == 'ana@example.com'
        assert call['buyer'].phone == '8888-7777'
        assert call['line_items'][0].quantity == 2

    def test_free_shipping_at_threshold(self, services, gateway, place_order):
        order, _ = place_order(quantity=4, price=Decimal('10000.00'))

        services.payments.initiate_payment(str(order.pk), 'scripted')

        assert gateway.calls[0]['shipping_cost'] == Decimal('0')

    def test_converts_for_gateways_that_cannot_settle_crc(self, services, usd_gateway, place_order):
        order, _ = place_order(quantity=1, price=Decimal('51000.00'))

        services.payments.initiate_payment(str(order.pk), 'usd')

        call = usd_gateway.calls[0]
        assert call['currency'] == 'USD'
        assert call['amount'] == Decimal('100.00')
        assert call['shipping_cost'] == Decimal('0.00')
        assert call['line_items'][0].unit_price == Decimal('100.00')

    def test_missing_exchange_rate_is_a_configuration_error(self, services, usd_gateway, place_order):
        order, _ = place_order()
        services.payments.exchange_rates = {'EUR': Decimal('560')}

        with pytest.raises(ExchangeRateMissing):
            services.payments.initiate_payment(str(order.pk), 'usd')
        assert usd_gateway.calls == []

    def test_does_not_mutate_order(self, services, notifier, place_order):
        order, _ = place_order()
        events_before = list(notifier.names())

        services.payments.initiate_payment(str(order.pk), 'scripted')

        assert services.orders.get(order.pk).status == OrderStatus.AWAITING_PAYMENT
        assert notifier.names() == events_before

    def test_manual_redirects_to_proof_upload(self, services, gateway, place_order):
        order, _ = place_order()

        response = services.payments.initiate_payment(str(order.pk), 'manual')

        assert response.success is True
        assert response.redirect_url == 'https://shop.example/store/my-orders'
        assert gateway.calls == []

    def test_paid_order_is_already_settled(self, services, place_order):
        order, _ = place_order()
        services.status_machine.advance(order.pk, 'paid')

        with pytest.raises(AlreadySettled):
            services.payments.initiate_payment(str(order.pk), 'scripted')

    def test_cancelled_order(self, services, place_order):
        order, _ = place_order()
        services.orders.cancel(order.pk)

        with pytest.raises(InvalidState):
            services.payments.initiate_payment(str(order.pk), 'scripted')

    def test_unknown_method(self, services, place_order):
        order, _ = place_order()

        with pytest.raises(UnsupportedPaymentMethod):
            services.payments.initiate_payment(str(order.pk), 'bitcoin')

    def test_unknown_order(self, services):
        with pytest.raises(OrderNotFound):
            services.payments.initiate_payment('00000000-0000-0000-0000-000000000000', 'scripted')


class TestHandleWebhook:

    def succeeded(self, order, reference='ch_1'):
        return {'kind': 'succeeded', 'order_id': str(order.pk), 'reference': reference, 'type': 'payment.succeeded'}

    def test_invalid_signature_changes_nothing(self, services, notifier, place_order):
        order, _ = place_order()
        events_before = list(notifier.names())

        with pytest.raises(UnverifiedWebhook):
            services.payments.handle_webhook('scripted', self.succeeded(order), 'forged')

        assert services.orders.get(order.pk).status == OrderStatus.AWAITING_PAYMENT
        assert not PaymentProof.objects.filter(order_id=order.pk).exists()
        assert notifier.names() == events_before

    def test_succeeded_marks_paid_and_records_reference(self, services, notifier, place_order):
        order, _ = place_order()

        ack = services.payments.handle_webhook('scripted', self.succeeded(order), 'good')

        assert ack == {'received': True, 'processed': True, 'status': 'succeeded', 'order_id': str(order.pk)}
        assert services.orders.get(order.pk).status == OrderStatus.PAID
        proof = PaymentProof.objects.get(order_id=order.pk)
        assert proof.review_status == ReviewStatus.VERIFIED
        assert proof.reference == 'ch_1'
        assert proof.method == 'scripted'
        assert notifier.count('payment.approved') == 1

    def test_replayed_webhook_is_idempotent(self, services, notifier, place_order, registered, customer):
        order, _ = place_order(owner=registered)
        payload = self.succeeded(order)

        services.payments.handle_webhook('scripted', payload, 'good')
        services.status_machine.advance(order.pk, 'completed')
        replay = services.payments.handle_webhook('scripted', payload, 'good')

        assert replay['received'] is True
        assert replay['processed'] is False
        assert services.orders.get(order.pk).status == OrderStatus.COMPLETED
        assert notifier.count('payment.approved') == 1
        assert LoyaltyAccount.objects.get(user=customer).tokens == 9

    def test_second_gateway_success_on_paid_order_is_ignored(self, services, notifier, place_order):
        order, _ = place_order()
        services.payments.handle_webhook('scripted', self.succeeded(order, 'ch_1'), 'good')

        ack = services.payments.handle_webhook('scripted', self.succeeded(order, 'ch_2'), 'good')

        assert ack['processed'] is False
        assert PaymentProof.objects.get(order_id=order.pk).reference == 'ch_1'
        assert notifier.count('payment.approved') == 1

    def test_failed_records_rejection_without_status_change(self, services, notifier, place_order):
        order, _ = place_order()
        payload = {'kind': 'failed', 'order_id': str(order.pk), 'reference': 'pi_9', 'reason': 'Card declined'}

        services.payments.handle_webhook('scripted', payload, 'good')

        assert services.orders.get(order.pk).status == OrderStatus.AWAITING_PAYMENT
        proof = PaymentProof.objects.get(order_id=order.pk)
        assert proof.review_status == ReviewStatus.REJECTED
        assert proof.reason == 'Card declined'
        assert notifier.names()[-1] == 'payment.rejected'

    def test_deferred_records_pending(self, services, place_order):
        order, _ = place_order()
        payload = {'kind': 'deferred', 'order_id': str(order.pk), 'reference': 'pi_5', 'reason': 'SINPE pending'}

        services.payments.handle_webhook('scripted', payload, 'good')

        proof = PaymentProof.objects.get(order_id=order.pk)
        assert proof.review_status == ReviewStatus.PENDING
        assert proof.reason == 'SINPE pending'
        assert services.orders.get(order.pk).status == OrderStatus.AWAITING_PAYMENT

    def test_failure_after_settlement_is_ignored(self, services, place_order):
        order, _ = place_order()
        services.payments.handle_webhook('scripted', self.succeeded(order), 'good')
        late = {'kind': 'failed', 'order_id': str(order.pk), 'reference': 'pi_late', 'reason': 'timeout'}

        services.payments.handle_webhook('scripted', late, 'good')

        assert services.orders.get(order.pk).status == OrderStatus.PAID
        assert PaymentProof.objects.get(order_id=order.pk).review_status == ReviewStatus.VERIFIED

    def test_approved_pending_capture_is_acknowledged_only(self, services, place_order):
        order, _ = place_order()
        payload = {'kind': 'approved_pending_capture', 'order_id': str(order.pk)}

        ack = services.payments.handle_webhook('scripted', payload, 'good')

        assert ack['status'] == 'approved'
        assert not PaymentProof.objects.filter(order_id=order.pk).exists()

    def test_ignored_event(self, services):
        ack = services.payments.handle_webhook('scripted', {'kind': 'ignored', 'type': 'customer.updated'}, 'good')

        assert ack == {'received': True, 'processed': False, 'event': 'customer.updated'}

    def test_unknown_gateway(self, services):
        assert services.payments.handle_webhook('stripe', {}, 'good') == {'received': False}

    def test_manual_gateway_takes_no_webhooks(self, services):
        assert services.payments.handle_webhook('manual', {'kind': 'succeeded'}, 'good') == {'received': False}

    def test_internal_errors_are_acknowledged(self, services):
        ack = services.payments.handle_webhook('scripted', {'explode': True}, 'good')

        assert ack['received'] is True
        assert ack['processed'] is False
        assert 'malformed payload' in ack['error']

    def test_missing_order_is_acknowledged(self, services):
        payload = {'kind': 'succeeded', 'order_id': '00000000-0000-0000-0000-000000000000', 'reference': 'x'}

        ack = services.payments.handle_webhook('scripted', payload, 'good')

        assert ack['received'] is True
        assert ack['processed'] is False


class TestWebhookVerificationErrors:

    def test_verification_crash_counts_as_unverified(self, services, gateway, notifier, place_order, monkeypatch):
        order, _ = place_order()
        events_before = list(notifier.names())

        def explode(payload, signature):
            raise KeyError('access_token')

        monkeypatch.setattr(gateway, 'verify_webhook', explode)
        payload = {'kind': 'succeeded', 'order_id': str(order.pk), 'reference': 'ch_1'}

        with pytest.raises(UnverifiedWebhook):
            services.payments.handle_webhook('scripted', payload, 'good')

        assert services.orders.get(order.pk).status == OrderStatus.AWAITING_PAYMENT
        assert notifier.names() == events_before

    def test_paypal_token_without_access_token(self, notifier, proof_storage, place_order):
        order, _ = place_order()
        paypal = PaypalGateway(client_id='client', client_secret='secret', webhook_id='WH-1', timeout=1)
        services = build_services(notifier=notifier, storage=proof_storage, gateways={'paypal': paypal})
        payload = {
            'event_type': 'PAYMENT.CAPTURE.COMPLETED',
            'resource': {'id': 'CAP-1', 'custom_id': str(order.pk)},
        }
        signature = paypal.signature_from_headers({
            'PAYPAL-AUTH-ALGO': 'SHA256withRSA',
            'PAYPAL-CERT-URL': 'https://api.paypal.com/cert',
            'PAYPAL-TRANSMISSION-ID': 'tx-1',
            'PAYPAL-TRANSMISSION-SIG': 'sig',
            'PAYPAL-TRANSMISSION-TIME': '2026-01-01T00:00:00Z',
        })
        tokenless = MagicMock(status_code=200, ok=True, text='')
        tokenless.json.return_value = {'error': 'no token here'}

        with patch('requests.post', return_value=tokenless):
            with pytest.raises(UnverifiedWebhook):
                services.payments.handle_webhook('paypal', payload, signature)

        assert services.orders.get(order.pk).status == OrderStatus.AWAITING_PAYMENT
