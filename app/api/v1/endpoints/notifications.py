from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.notification import NotificationListOut, NotificationOut
from app.services.auth import Actor, get_actor
from app.services.notifications import list_notifications, mark_all_read

router = APIRouter()


@router.get("/notifications", response_model=NotificationListOut)
async def get_notifications(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> NotificationListOut:
    rows, unread = await list_notifications(db, actor=actor)
    return NotificationListOut(
        notifications=[NotificationOut.model_validate(r) for r in rows],
        unread_count=unread,
    )


@router.post("/notifications/read")
async def read_notifications(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> dict:
    await mark_all_read(db, actor=actor)
    await db.commit()
    return {"success": True}
