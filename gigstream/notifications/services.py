import logging

from django.db import transaction

from .models import Notification

logger = logging.getLogger(__name__)


def notify(user, notification_type, title, message, link='', send_email=True):
    """
    Record an in-app notification and queue the matching email.

    Both happen only once the surrounding transaction commits, so a rolled back
    ledger operation never notifies anyone.
    """
    def _dispatch():
        from .tasks import task_send_notification_email

        notification = Notification.objects.create(
            user=user,
            notification_type=notification_type,
            title=title,
            message=message,
            link=link,
        )
        if send_email and user.email:
            task_send_notification_email.delay(notification.id)

    transaction.on_commit(_dispatch)
