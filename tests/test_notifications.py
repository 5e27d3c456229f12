"""
Tests for notification dispatch: the dispatcher, the Celery task and the
Kafka producer's circuit breaker.
"""
from unittest.mock import MagicMock, patch

import pytest
from kafka.errors import KafkaTimeoutError

from orders import kafka_producer, notifications
from orders.kafka_producer import CircuitBreaker, CircuitState
from orders.notifications import NotificationDispatcher, build_order_snapshot
from orders.tasks import NotificationPublishError, dispatch_notification


class TestNotificationDispatcher:

    def test_queues_task_with_channel_routing(self):
        snapshot = {'id': 'order-1'}

        with patch('orders.notifications.dispatch_notification') as task:
            NotificationDispatcher().notify('payment.rejected', snapshot, {'reason': 'blurry'})

        event_data = task.delay.call_args.args[0]
        assert event_data == {
            'event': 'payment.rejected',
            'channels': {'customer': ['email'], 'admin': ['telegram']},
            'order': snapshot,
            'extra': {'reason': 'blurry'},
        }

    def test_unknown_event_is_dropped(self):
        with patch('orders.notifications.dispatch_notification') as task:
            NotificationDispatcher().notify('order.teleported', {'id': 'order-1'})

        task.delay.assert_not_called()

    def test_broker_failure_is_swallowed(self):
        with patch('orders.notifications.dispatch_notification') as task:
            task.delay.side_effect = ConnectionError('broker down')
            NotificationDispatcher().notify('order.created', {'id': 'order-1'})

    def test_every_event_has_routing(self):
        events = [
            notifications.ORDER_CREATED, notifications.PAYMENT_PROOF_RECEIVED, notifications.PAYMENT_APPROVED,
            notifications.PAYMENT_REJECTED, notifications.ORDER_IN_PRODUCTION, notifications.ORDER_SHIPPED,
            notifications.ORDER_COMPLETED, notifications.ORDER_CANCELLED, notifications.ORDER_ARCHIVED,
            notifications.ORDER_UNARCHIVED,
        ]
        assert set(events) == set(notifications.EVENT_CHANNELS)


@pytest.mark.django_db(transaction=True)
class TestAfterCommit:

    def test_notifier_errors_never_reach_the_mutation(self, services, place_order):
        class ExplodingNotifier:
            def notify(self, *args, **kwargs):
                raise RuntimeError('smtp down')

        services.status_machine.notifier = ExplodingNotifier()
        order, _ = place_order()

        services.status_machine.advance(order.pk, 'paid')

        assert services.orders.get(order.pk).status == 'paid'

    def test_snapshot_contents(self, services, place_order):
        order, variant = place_order(quantity=2)
        services.proofs.submit_proof(order.pk, b'img', 'sinpe', reference='R-1')

        snapshot = build_order_snapshot(services.orders.get(order.pk))

        assert snapshot['short_id'] == order.short_id
        assert snapshot['customer']['email'] == 'ana@example.com'
        assert snapshot['items'][0]['sku'] == variant.sku
        assert snapshot['total'] == '20000.00'
        assert snapshot['payment_proof']['reference'] == 'R-1'


class TestDispatchNotificationTask:

    event = {'event': 'order.created', 'channels': {}, 'order': {'id': 'order-1'}, 'extra': {}}

    def test_publishes_event(self):
        with patch('orders.tasks.publish_notification_event', return_value={'success': True}) as publish:
            result = dispatch_notification.apply(args=[self.event]).get()

        publish.assert_called_once_with(self.event)
        assert result == {'status': 'success', 'event': 'order.created', 'order_id': 'order-1'}

    def test_exhausted_retries_go_to_dlq(self):
        failure = {'success': False, 'error': 'No Kafka brokers available'}

        with patch('orders.tasks.publish_notification_event', return_value=failure) as publish, \
                patch('orders.tasks.publish_to_dlq') as dlq:
            result = dispatch_notification.apply(args=[self.event]).get(propagate=False)

        assert publish.call_count == dispatch_notification.max_retries + 1
        dlq.assert_called_once_with(self.event, 'No Kafka brokers available')
        assert result['status'] == 'failed'

    def test_publish_error_type(self):
        assert issubclass(NotificationPublishError, Exception)


class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, timeout=60)

        breaker.record_failure()
        assert breaker.can_attempt() is True
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.can_attempt() is False

    def test_half_open_after_timeout_then_closes(self):
        breaker = CircuitBreaker(failure_threshold=1, timeout=0)
        breaker.record_failure()

        assert breaker.can_attempt() is True
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED


class TestPublishNotificationEvent:

    @pytest.fixture(autouse=True)
    def fresh_breaker(self, monkeypatch):
        monkeypatch.setattr(kafka_producer, '_circuit_breaker', CircuitBreaker(failure_threshold=3, timeout=30))

    def test_keys_message_by_order_id(self, monkeypatch):
        metadata = MagicMock(topic='order-notifications', partition=2, offset=41)
        send = MagicMock(return_value=metadata)
        monkeypatch.setattr(kafka_producer, '_send', send)

        result = kafka_producer.publish_notification_event({'event': 'order.created', 'order': {'id': 'order-1'}})

        topic, key, message = send.call_args.args
        assert topic == 'order-notifications'
        assert key == 'order-1'
        assert message['event'] == 'order.created'
        assert message['version'] == '1.0'
        assert result['success'] is True
        assert result['metadata'] == {'topic': 'order-notifications', 'partition': 2, 'offset': 41}

    def test_timeout_is_reported_not_raised(self, monkeypatch):
        monkeypatch.setattr(kafka_producer, '_send', MagicMock(side_effect=KafkaTimeoutError('slow')))

        result = kafka_producer.publish_notification_event({'event': 'order.created', 'order': {'id': 'o'}})

        assert result['success'] is False
        assert result['error_type'] == 'timeout'

    def test_open_circuit_fails_fast(self, monkeypatch):
        send = MagicMock()
        monkeypatch.setattr(kafka_producer, '_send', send)
        breaker = CircuitBreaker(failure_threshold=1, timeout=60)
        breaker.record_failure()
        monkeypatch.setattr(kafka_producer, '_circuit_breaker', breaker)

        result = kafka_producer.publish_notification_event({'event': 'order.created', 'order': {'id': 'o'}})

        assert result['error_type'] == 'circuit_open'
        send.assert_not_called()

    def test_unexpected_error_is_reported_not_raised(self, monkeypatch):
        monkeypatch.setattr(kafka_producer, '_send', MagicMock(side_effect=TypeError('not serializable')))

        result = kafka_producer.publish_notification_event({'event': 'order.created', 'order': {'id': 'o'}})

        assert result['success'] is False
        assert result['error_type'] == 'unexpected'
        assert kafka_producer._circuit_breaker.failure_count == 1
