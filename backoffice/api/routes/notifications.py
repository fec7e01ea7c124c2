"""
In-app notifications for the calling user
=========================================

GET /api/notifications?unread=       -- latest 50, newest first
GET /api/notifications/unread-count  -- badge counter
PUT /api/notifications/{id}/read     -- mark one as read
PUT /api/notifications/read-all      -- mark everything as read
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_current_user, get_db
from backoffice.api.schemas import NotificationResponse, UnreadCountResponse
from backoffice.domain.errors import NotFound
from backoffice.infrastructure.repositories import NotificationRepository
from backoffice.services.auth import Principal

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _user_id(user: Principal) -> int:
    # API-key callers have no inbox
    if user.id is None:
        raise NotFound("Notification")
    return user.id


@router.get("", response_model=list[NotificationResponse], summary="List notifications")
async def list_notifications(
    unread: bool = False,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user.id is None:
        return []
    return await NotificationRepository(db).list_for_user(user.id, unread_only=unread)


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread count")
async def unread_count(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user.id is None:
        return UnreadCountResponse(count=0)
    return UnreadCountResponse(count=await NotificationRepository(db).count_unread(user.id))


@router.put("/read-all", summary="Mark all as read")
async def mark_all_read(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await NotificationRepository(db).mark_all_read(_user_id(user))
    return {"ok": True}


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark one as read",
)
async def mark_read(
    notification_id: int,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = NotificationRepository(db)
    notification = await repo.get_for_user(notification_id, _user_id(user))
    if not notification:
        raise NotFound("Notification")
    notification.is_read = True
    await db.flush()
    return notification
