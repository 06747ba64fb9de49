"""Notification Service - Surface scheduling and failure events to users.

Notifications are fire-and-forget: a failure to write one is logged and
never propagates into the job or worker that raised it.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class NotificationType:
    INFO = "info"
    FOLLOW_UP_FAILED = "follow_up_failed"
    LEAD_CONVERTED = "lead_converted"
    WORKER_FAILURE = "worker_failure"


class NotificationService:
    def __init__(self, storage):
        self.storage = storage

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Create an in-app notification for a user.

        Returns:
            True if the notification was stored, False otherwise
        """
        try:
            self.storage.create_notification(user_id, {
                "title": title,
                "message": message,
                "type": notification_type,
                "metadata": metadata or {},
            })
            return True
        except Exception as e:
            logger.error(f"Error creating notification for user {user_id}: {e}")
            return False

    def alert_admins(
        self,
        title: str,
        message: str,
        notification_type: str = NotificationType.WORKER_FAILURE,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Notify every admin user. Returns the ids that were notified."""
        try:
            admin_ids = self.storage.get_admin_user_ids()
        except Exception as e:
            logger.error(f"Error loading admin users for alert '{title}': {e}")
            return []

        notified = []
        for admin_id in admin_ids:
            if self.notify(admin_id, title, message, notification_type, metadata):
                notified.append(admin_id)

        if not admin_ids:
            logger.warning(f"No admin users to alert: {title}")
        return notified
