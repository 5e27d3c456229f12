import logging

from celery import shared_task

from .kafka_producer import publish_notification_event, publish_to_dlq

logger = logging.getLogger(__name__)


class NotificationPublishError(Exception):
    pass


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,  # 1 minute
)
def dispatch_notification(self, event_data):
    """
    Publish one notification event to Kafka in the background.

    Args:
        event_data: {'event', 'channels', 'order', 'extra'} built by
            NotificationDispatcher

    Returns:
        dict: Result of the operation
    """
    event = event_data.get('event')
    order_id = (event_data.get('order') or {}).get('id')

    result = publish_notification_event(event_data)
    if result['success']:
        logger.info(f"[Notification Task] {event} published for order {order_id}")
        return {'status': 'success', 'event': event, 'order_id': order_id}

    logger.warning(
        f"[Notification Task] Publishing {event} for order {order_id} failed "
        f"(attempt {self.request.retries + 1}/{self.max_retries + 1}): {result['error']}"
    )

    if self.request.retries >= self.max_retries:
        publish_to_dlq(event_data, result['error'])
        return {'status': 'failed', 'event': event, 'order_id': order_id, 'error': result['error']}

    raise self.retry(exc=NotificationPublishError(result['error']))
