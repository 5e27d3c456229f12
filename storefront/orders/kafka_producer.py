"""
Kafka producer for order notification events with:
- Circuit Breaker pattern
- Retry with exponential backoff (tenacity)
- Dead Letter Queue fallback
- Health monitoring

Channel fan-out (email, chat) happens in consumers of the notification
topic, outside this service.
"""
import json
import logging
from datetime import datetime, timedelta
from enum import Enum

from django.conf import settings
from kafka import KafkaProducer
from kafka.errors import KafkaError, KafkaTimeoutError, NoBrokersAvailable
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

# Singleton producer instance
_producer = None


class CircuitState(Enum):
    CLOSED = "closed"        # normal operation
    OPEN = "open"            # broker considered down, fail fast
    HALF_OPEN = "half_open"  # probing after the cool-down


class CircuitBreaker:
    """
    Stops hammering Kafka while it is down.

    - CLOSED: every publish is attempted
    - OPEN: publishes are rejected immediately until ``timeout`` elapses
    - HALF_OPEN: one probe; success closes the circuit, failure re-opens it
    """

    def __init__(self, failure_threshold=5, timeout=60):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.last_failure_time = None
        self.state = CircuitState.CLOSED

    def record_success(self):
        if self.state != CircuitState.CLOSED:
            logger.info("[Circuit Breaker] Success recorded, circuit CLOSED")
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        if self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.error(
                f"[Circuit Breaker] Circuit OPENED after {self.failure_count} failures. "
                f"Will retry after {self.timeout}s"
            )
        else:
            logger.warning(
                f"[Circuit Breaker] Failure {self.failure_count}/{self.failure_threshold}"
            )

    def can_attempt(self):
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if datetime.now() - self.last_failure_time > timedelta(seconds=self.timeout):
                self.state = CircuitState.HALF_OPEN
                logger.info("[Circuit Breaker] Circuit HALF_OPEN, trying again...")
                return True
            return False

        # HALF_OPEN
        return True


_circuit_breaker = CircuitBreaker(failure_threshold=3, timeout=30)


def get_producer():
    """Get or create the Kafka producer instance"""
    global _producer

    if _producer is None:
        try:
            _producer = KafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                key_serializer=lambda k: k.encode('utf-8') if k else None,
                value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
                acks='all',
                retries=3,
                max_in_flight_requests_per_connection=1,  # keep per-order ordering
                compression_type='gzip',
                request_timeout_ms=10000,
            )
            logger.info("[Producer] Kafka producer initialized")
            _circuit_breaker.record_success()

        except NoBrokersAvailable:
            logger.error("[Producer] No Kafka brokers available")
            _circuit_breaker.record_failure()
            raise

        except Exception as e:
            logger.error(f"[Producer] Failed to initialize Kafka producer: {e}")
            _circuit_breaker.record_failure()
            raise

    return _producer


@retry(
    retry=retry_if_exception_type((KafkaTimeoutError, NoBrokersAvailable)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
def _send(topic, key, value):
    producer = get_producer()
    future = producer.send(topic, key=key, value=value)
    return future.get(timeout=30)


def publish_notification_event(event_data, topic=None):
    """
    Publish a notification event, keyed by order id so that all events of
    one order land on the same partition in order.

    Returns:
        dict: {'success', 'metadata', 'error', 'circuit_state'}
    """
    if topic is None:
        topic = settings.KAFKA_TOPIC_NOTIFICATIONS

    order_id = (event_data.get('order') or {}).get('id')

    if not _circuit_breaker.can_attempt():
        error_msg = "Circuit breaker is OPEN. Kafka is currently unavailable."
        logger.error(f"[Producer] {error_msg}")
        return {
            'success': False,
            'metadata': None,
            'error': error_msg,
            'error_type': 'circuit_open',
            'circuit_state': _circuit_breaker.state.value,
        }

    message = {
        **event_data,
        'version': '1.0',
        'timestamp': datetime.now().isoformat(),
    }

    try:
        logger.info(
            f"[Producer] Sending {event_data.get('event')} to {topic} - Order ID: {order_id}"
        )
        record_metadata = _send(topic, order_id, message)
        _circuit_breaker.record_success()

        logger.info(
            f"[Producer] Event published - Topic: {record_metadata.topic}, "
            f"Partition: {record_metadata.partition}, Offset: {record_metadata.offset}, "
            f"Order ID: {order_id}"
        )
        return {
            'success': True,
            'metadata': {
                'topic': record_metadata.topic,
                'partition': record_metadata.partition,
                'offset': record_metadata.offset,
            },
            'error': None,
            'circuit_state': _circuit_breaker.state.value,
        }

    except KafkaTimeoutError as e:
        _circuit_breaker.record_failure()
        logger.error(f"[Producer] Kafka timeout: {e}", exc_info=True)
        return _failure(f"Kafka timeout: {e}", 'timeout')

    except NoBrokersAvailable:
        _circuit_breaker.record_failure()
        logger.error("[Producer] No Kafka brokers available", exc_info=True)
        return _failure("No Kafka brokers available", 'no_brokers')

    except KafkaError as e:
        _circuit_breaker.record_failure()
        logger.error(f"[Producer] Kafka error: {e}", exc_info=True)
        return _failure(f"Kafka error: {e}", 'kafka_error')

    except Exception as e:
        _circuit_breaker.record_failure()
        logger.error(f"[Producer] Unexpected error: {e}", exc_info=True)
        return _failure(f"Unexpected error: {e}", 'unexpected')


def _failure(error_msg, error_type):
    return {
        'success': False,
        'metadata': None,
        'error': error_msg,
        'error_type': error_type,
        'circuit_state': _circuit_breaker.state.value,
    }


def publish_to_dlq(event_data, error_message):
    """Send an event that could not be delivered to the Dead Letter Queue"""
    try:
        dlq_data = {
            **event_data,
            'error': error_message,
            'failed_at': datetime.now().isoformat(),
            'original_topic': settings.KAFKA_TOPIC_NOTIFICATIONS,
        }

        producer = get_producer()
        producer.send(settings.KAFKA_TOPIC_NOTIFICATIONS_DLQ, value=dlq_data)
        producer.flush()

        logger.warning(
            f"[DLQ] Event sent to Dead Letter Queue - "
            f"Event: {event_data.get('event')}, Error: {error_message}"
        )

    except Exception as e:
        logger.error(f"[DLQ] Failed to send event to DLQ: {e}", exc_info=True)


def get_circuit_breaker_status():
    return {
        'state': _circuit_breaker.state.value,
        'failure_count': _circuit_breaker.failure_count,
        'failure_threshold': _circuit_breaker.failure_threshold,
        'last_failure_time': _circuit_breaker.last_failure_time.isoformat()
            if _circuit_breaker.last_failure_time else None,
        'timeout': _circuit_breaker.timeout,
    }


def close_producer():
    global _producer
    if _producer is not None:
        try:
            _producer.close()
            logger.info("[Producer] Kafka producer closed")
        except Exception as e:
            logger.error(f"[Producer] Error closing Kafka producer: {e}")
        finally:
            _producer = None
