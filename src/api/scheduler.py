from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from src.config import get_settings

router = APIRouter(prefix="/api", tags=["scheduler"])


def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    settings = get_settings()
    # Require admin key in production
    if settings.is_production:
        if not settings.admin_api_key:
            raise HTTPException(status_code=503, detail="Admin API not configured")
        if x_admin_key != settings.admin_api_key:
            raise HTTPException(status_code=401, detail="Invalid admin key")


@router.post("/scheduler/tick", dependencies=[Depends(require_admin_key)])
def trigger_tick(request: Request):
    """Run one scheduler tick now (for external cron / serverless triggers)."""
    loop = getattr(request.app.state, "scheduler_loop", None)
    if loop is None:
        raise HTTPException(status_code=503, detail="Scheduler not initialised")
    summary = loop.tick()
    return {"success": True, "message": "Scheduler executed", **summary.as_dict()}


@router.get("/admin/status", dependencies=[Depends(require_admin_key)])
def admin_status(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    jobs = []
    if scheduler:
        for job in scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": str(job.next_run_time) if job.next_run_time else None,
                }
            )

    return {
        "scheduler_running": scheduler is not None and scheduler.running,
        "jobs": jobs,
    }
