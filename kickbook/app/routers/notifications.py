# kickbook/app/routers/notifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user
from ..models import User
from ..schemas import NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = False,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    """Newest first."""
    return crud.get_notifications(db, user.id, unread_only=unread_only)


@router.post("/{notification_id}/read")
def mark_read(notification_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    if not crud.mark_notification_read(db, user.id, notification_id):
        raise HTTPException(404, "Notification not found")
    return {"ok": True}


@router.post("/read-all")
def mark_all_read(user: User = Depends(current_user), db: Session = Depends(get_db)):
    count = crud.mark_all_notifications_read(db, user.id)
    return {"ok": True, "updated": count}


@router.delete("/{notification_id}")
def delete_notification(notification_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    if not crud.delete_notification(db, user.id, notification_id):
        raise HTTPException(404, "Notification not found")
    return {"ok": True}
