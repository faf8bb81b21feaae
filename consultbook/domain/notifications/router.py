"""Notifications router - read access to the outbound queue for operators"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from .queue import list_pending_notifications

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: int
    to: str
    type: str
    data: dict[str, Any]
    status: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


@router.get("/pending", response_model=list[NotificationResponse])
async def get_pending_notifications(
    limit: int = Query(100, ge=1, le=500),
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Entries not yet picked up by the notifier"""
    return list_pending_notifications(db, limit)
