"""Notifications domain - producer side of the outbound notification queue"""

from .queue import enqueue_notification, list_pending_notifications

__all__ = ["enqueue_notification", "list_pending_notifications"]
