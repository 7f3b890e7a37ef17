# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Background tasks for work that shouldn't hold up an API request.
#
# Tasks:
# - dispatch_notification: deliver a notification on its channels
# =============================================================================

import logging
from typing import Any

from celery import shared_task

logger = logging.getLogger(__name__)


# =============================================================================
# Notification Delivery
# =============================================================================

@shared_task(bind=True, name="workers.tasks.dispatch_notification")
def dispatch_notification(self, request: dict[str, Any]) -> dict[str, Any]:
    """
    Deliver a notification queued by notify().

    Args:
        request: NotificationRequest.model_dump(mode="json")

    Returns:
        DeliveryResult as a dict

    Raises:
        Retries on database errors (up to max_retries)
    """
    from app.exceptions import DatabaseError
    from core.models.notifications import NotificationRequest
    from core.services.notification_service import NotificationService

    notification = NotificationRequest(**request)
    logger.info(f"Dispatching '{notification.title}' to user {notification.user_id}")

    try:
        result = NotificationService.send_notification(notification)
    except DatabaseError as e:
        logger.warning(f"Notification dispatch failed, retrying: {e}")
        raise self.retry(exc=e)

    if not result.success:
        logger.warning(f"No channel delivered notification for {notification.user_id}: {result.errors}")

    return result.model_dump(mode="json")
