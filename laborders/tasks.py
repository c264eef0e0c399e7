import logging

from celery import shared_task
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


def _notifier():
    path = getattr(settings, 'ORDER_NOTIFIER', '')
    return import_string(path) if path else None


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # doubled on every retry: 10s → 20s → 40s
    acks_late=True,
    reject_on_worker_lost=True,
)
def notify_order_status_changed(self, order_id, status):
    """
    Tell the order's owner that an imported order changed status.

    Delivery goes through the callable named by ORDER_NOTIFIER; without one
    the change is only logged.
    """
    from laborders.models import Order

    logger.info(
        'Notifying status change order_id=%s status=%s (attempt %d/%d)',
        order_id, status, self.request.retries + 1, self.max_retries + 1,
    )

    if not Order.objects.filter(id=order_id).exists():
        logger.error('Order %s does not exist, skipping notification', order_id)
        return

    notifier = _notifier()
    if notifier is None:
        logger.info('No notifier configured order_id=%s status=%s', order_id, status)
        return

    try:
        notifier(order_id, status)
    except Exception as exc:
        logger.warning(
            'Notification failed order_id=%s (attempt %d): %s',
            order_id, self.request.retries + 1, exc,
        )
        if self.request.retries >= self.max_retries:
            logger.error('Giving up on notification order_id=%s status=%s', order_id, status)
            raise
        countdown = self.default_retry_delay * (2 ** self.request.retries)
        raise self.retry(exc=exc, countdown=countdown)

    logger.info('Notification delivered order_id=%s status=%s', order_id, status)
