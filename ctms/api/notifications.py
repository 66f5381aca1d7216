"""In-app notification endpoints."""

from fastapi import APIRouter, HTTPException, status

from ctms.api.deps import DbDep
from ctms.auth.middleware import ActorDep
from ctms.schemas.notification import NotificationOut
from ctms.storage.repositories import get_notification, list_notifications

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
async def get_my_notifications(actor: ActorDep, db: DbDep, unread_only: bool = False):
    return await list_notifications(db, actor.user_id, unread_only=unread_only)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: str, actor: ActorDep, db: DbDep):
    notification = await get_notification(db, notification_id)
    if not notification or notification.user_id != actor.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.read = True
    await db.commit()
    return notification
