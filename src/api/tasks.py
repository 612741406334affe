from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.db.database import get_db
from src.exceptions import InvalidIntervalError
from src.models.execution_log import ExecutionLog
from src.models.task import ApiTask, HttpMethod
from src.scheduler.interval import next_run_utc, utcnow

router = APIRouter(prefix="/api", tags=["tasks"])


class CreateTaskRequest(BaseModel):
    user_id: str
    task_name: str = Field(min_length=1, max_length=255)
    api_url: str = Field(min_length=1, max_length=2048)
    method: Literal["GET", "POST"] = "GET"
    request_headers: Optional[Dict[str, str]] = None
    request_body: Optional[str] = None
    schedule_interval: str
    include_response: bool = False


class TaskResponse(BaseModel):
    id: int
    user_id: str
    task_name: str
    api_url: str
    method: str
    schedule_interval: str
    include_response: bool
    is_active: bool
    last_run_at: Optional[datetime]
    next_run_at: Optional[datetime]


class LogResponse(BaseModel):
    id: int
    status_code: Optional[int]
    response_headers: Optional[Dict[str, str]]
    response_body: Optional[str]
    response_time_ms: int
    error_message: Optional[str]
    executed_at: datetime


def _task_response(task: ApiTask) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        user_id=task.user_id,
        task_name=task.task_name,
        api_url=task.api_url,
        method=task.method.value,
        schedule_interval=task.schedule_interval,
        include_response=bool(task.include_response),
        is_active=bool(task.is_active),
        last_run_at=task.last_run_at,
        next_run_at=task.next_run_at,
    )


async def _get_task_or_404(db: AsyncSession, task_id: int) -> ApiTask:
    task = await db.get(ApiTask, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/tasks", status_code=201)
async def create_task(body: CreateTaskRequest, db: AsyncSession = Depends(get_db)):
    settings = get_settings()
    try:
        next_run_at = next_run_utc(
            utcnow(), body.schedule_interval, settings.scheduler_timezone
        )
    except InvalidIntervalError as e:
        raise HTTPException(status_code=400, detail=str(e))

    task = ApiTask(
        user_id=body.user_id,
        task_name=body.task_name,
        api_url=body.api_url,
        method=HttpMethod(body.method),
        request_headers=body.request_headers,
        request_body=body.request_body,
        schedule_interval=body.schedule_interval,
        include_response=body.include_response,
        is_active=True,
        next_run_at=next_run_at,
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return _task_response(task)


@router.get("/tasks")
async def list_tasks(user_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(ApiTask).where(ApiTask.user_id == user_id).order_by(ApiTask.id)
    )
    return {"items": [_task_response(task) for task in result.scalars().all()]}


@router.get("/tasks/{task_id}")
async def get_task(task_id: int, db: AsyncSession = Depends(get_db)):
    return _task_response(await _get_task_or_404(db, task_id))


@router.post("/tasks/{task_id}/pause")
async def pause_task(task_id: int, db: AsyncSession = Depends(get_db)):
    task = await _get_task_or_404(db, task_id)
    task.is_active = False
    await db.commit()
    await db.refresh(task)
    return _task_response(task)


@router.post("/tasks/{task_id}/resume")
async def resume_task(task_id: int, db: AsyncSession = Depends(get_db)):
    settings = get_settings()
    task = await _get_task_or_404(db, task_id)
    task.is_active = True
    task.next_run_at = next_run_utc(
        utcnow(), task.schedule_interval, settings.scheduler_timezone
    )
    await db.commit()
    await db.refresh(task)
    return _task_response(task)


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: int, db: AsyncSession = Depends(get_db)):
    task = await _get_task_or_404(db, task_id)
    # Logs and notification links go with it (ON DELETE CASCADE)
    await db.delete(task)
    await db.commit()


@router.get("/tasks/{task_id}/logs")
async def list_task_logs(
    task_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> List[LogResponse]:
    await _get_task_or_404(db, task_id)
    result = await db.execute(
        select(ExecutionLog)
        .where(ExecutionLog.task_id == task_id)
        .order_by(ExecutionLog.executed_at.desc(), ExecutionLog.id.desc())
        .limit(limit)
    )
    return [
        LogResponse(
            id=log.id,
            status_code=log.status_code,
            response_headers=log.response_headers,
            response_body=log.response_body,
            response_time_ms=log.response_time_ms,
            error_message=log.error_message,
            executed_at=log.executed_at,
        )
        for log in result.scalars().all()
    ]
