from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.database import get_db
from src.models.integration import Integration
from src.models.task import ApiTask
from src.models.task_notification import NotifyOn, TaskNotification

router = APIRouter(prefix="/api", tags=["notifications"])


class LinkNotificationRequest(BaseModel):
    integration_id: int
    notify_on: Literal["always", "failure_only", "timeout"] = "always"
    include_response: bool = False


class NotificationLinkResponse(BaseModel):
    id: int
    task_id: int
    integration_id: int
    integration_type: str
    integration_name: str
    notify_on: str
    include_response: bool


def _link_response(link: TaskNotification, integration: Integration) -> NotificationLinkResponse:
    return NotificationLinkResponse(
        id=link.id,
        task_id=link.task_id,
        integration_id=integration.id,
        integration_type=integration.integration_type.value,
        integration_name=integration.name,
        notify_on=link.notify_on.value,
        include_response=bool(link.include_response),
    )


@router.get("/tasks/{task_id}/notifications")
async def list_task_notifications(task_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(TaskNotification, Integration)
        .join(Integration, TaskNotification.integration_id == Integration.id)
        .where(TaskNotification.task_id == task_id)
        .order_by(TaskNotification.id)
    )
    return {"items": [_link_response(link, integration) for link, integration in result.all()]}


@router.post("/tasks/{task_id}/notifications", status_code=201)
async def link_task_notification(
    task_id: int, body: LinkNotificationRequest, db: AsyncSession = Depends(get_db)
):
    task = await db.get(ApiTask, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    integration = await db.get(Integration, body.integration_id)
    if integration is None:
        raise HTTPException(status_code=404, detail="Integration not found")
    if integration.user_id != task.user_id:
        raise HTTPException(status_code=400, detail="Integration belongs to another user")

    link = TaskNotification(
        task_id=task_id,
        integration_id=integration.id,
        notify_on=NotifyOn(body.notify_on),
        include_response=body.include_response,
    )
    db.add(link)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=409, detail="Integration already linked to this task"
        )
    await db.refresh(link)
    return _link_response(link, integration)


@router.delete("/tasks/{task_id}/notifications/{integration_id}", status_code=204)
async def unlink_task_notification(
    task_id: int, integration_id: int, db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(TaskNotification).where(
            TaskNotification.task_id == task_id,
            TaskNotification.integration_id == integration_id,
        )
    )
    link = result.scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=404, detail="Notification link not found")
    await db.delete(link)
    await db.commit()
