from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.database import get_db
from src.models.integration import Integration, IntegrationType

router = APIRouter(prefix="/api", tags=["integrations"])

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_WEBHOOK_TYPES = {IntegrationType.slack, IntegrationType.discord, IntegrationType.webhook}


class CreateIntegrationRequest(BaseModel):
    user_id: str
    integration_type: str
    name: str
    credentials: Dict[str, Any]


class IntegrationResponse(BaseModel):
    id: int
    user_id: str
    integration_type: str
    name: str
    is_active: bool
    created_at: datetime


def _integration_response(integration: Integration) -> IntegrationResponse:
    # Credentials hold webhook secrets and addresses, never echoed back
    return IntegrationResponse(
        id=integration.id,
        user_id=integration.user_id,
        integration_type=integration.integration_type.value,
        name=integration.name,
        is_active=bool(integration.is_active),
        created_at=integration.created_at,
    )


def validate_integration(body: CreateIntegrationRequest) -> IntegrationType:
    """檢查 integration 類型與 credentials，不合法時回 400"""
    if not body.integration_type or not body.name.strip() or not body.credentials:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        integration_type = IntegrationType(body.integration_type)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid integration type")

    credentials = body.credentials
    if integration_type in _WEBHOOK_TYPES and not credentials.get("webhook_url"):
        raise HTTPException(
            status_code=400,
            detail=f"{integration_type.value.capitalize()} webhook URL is required",
        )

    if integration_type == IntegrationType.email:
        email = credentials.get("email")
        if not email:
            raise HTTPException(status_code=400, detail="Email address is required")
        if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
            raise HTTPException(status_code=400, detail="Invalid email address format")

    return integration_type


@router.get("/integrations")
async def list_integrations(user_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Integration)
        .where(Integration.user_id == user_id)
        .order_by(Integration.created_at.desc(), Integration.id.desc())
    )
    return {"items": [_integration_response(i) for i in result.scalars().all()]}


@router.post("/integrations", status_code=201)
async def create_integration(
    body: CreateIntegrationRequest, db: AsyncSession = Depends(get_db)
):
    integration_type = validate_integration(body)

    integration = Integration(
        user_id=body.user_id,
        integration_type=integration_type,
        name=body.name.strip(),
        credentials=body.credentials,
        is_active=True,
    )
    db.add(integration)
    await db.commit()
    await db.refresh(integration)
    return _integration_response(integration)


@router.delete("/integrations/{integration_id}", status_code=204)
async def delete_integration(integration_id: int, db: AsyncSession = Depends(get_db)):
    integration = await db.get(Integration, integration_id)
    if integration is None:
        raise HTTPException(status_code=404, detail="Integration not found")
    # Task links to it go too (ON DELETE CASCADE)
    await db.delete(integration)
    await db.commit()
