"""
Notification queue producer.

The engine only appends entries; rendering and delivery belong to the external
notifier that drains ``notification_queue``. Entries are added to the caller's
session so they commit (or roll back) together with the state change that
produced them.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models import NotificationQueueEntry
from ...shared.transactions import storage_guard

logger = logging.getLogger(__name__)


def enqueue_notification(
    db: Session,
    to: str,
    notification_type: str,
    data: Optional[dict[str, Any]] = None,
) -> NotificationQueueEntry:
    """Append a pending notification to the current unit of work"""
    entry = NotificationQueueEntry(to=to, type=notification_type, data=data or {}, status="pending")
    db.add(entry)
    logger.info(f"📧 Queued {notification_type} notification for {to}")
    return entry


def list_pending_notifications(db: Session, limit: int = 100) -> list[NotificationQueueEntry]:
    with storage_guard(db, "list pending notifications"):
        return (
            db.query(NotificationQueueEntry)
            .filter(NotificationQueueEntry.status == "pending")
            .order_by(NotificationQueueEntry.id.asc())
            .limit(limit)
            .all()
        )
