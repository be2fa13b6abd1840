import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .models import Notification

logger = logging.getLogger(__name__)


@shared_task
def task_send_notification_email(notification_id):
    notification = Notification.objects.select_related('user').filter(id=notification_id).first()
    if notification is None:
        logger.warning(f"Notification {notification_id} vanished before its email was sent")
        return False

    user = notification.user
    link = f"{settings.FRONTEND_DOMAIN}{notification.link}" if notification.link else settings.FRONTEND_DOMAIN
    message = f"""
    Hello {user.get_full_name() or user.email},

    {notification.message}

    View details: {link}

    The {settings.SITE_NAME} Team
    """

    try:
        send_mail(
            subject=f"{notification.title} - {settings.SITE_NAME}",
            message=message.strip(),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            fail_silently=False,
        )
    except Exception as e:
        logger.error(f"Failed to email notification {notification_id} to {user.email}: {str(e)}")
        return False
    return True
