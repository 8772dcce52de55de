"""
Admin API for Scheduled Jobs

Endpoints for managing and monitoring the auction settlement sweep.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from pydantic import BaseModel

from agrobid.core.deps import get_current_user, get_db
from agrobid.db.models import User
from agrobid.services.scheduler_service import scheduler_service
from agrobid.utils.permissions import require_role

router = APIRouter(prefix="/api/admin/jobs", tags=["admin", "jobs"])


class JobStatus(BaseModel):
    """Job status response."""
    id: str
    name: str
    next_run: str | None
    trigger: str


class JobTriggerRequest(BaseModel):
    """Request to manually trigger a job."""
    job_id: str


class SweepReportOut(BaseModel):
    """Outcome of one settlement sweep."""
    activated: int
    sold: List[str]
    unsold: List[str]
    failed: List[str]


@router.get("/", response_model=List[JobStatus])
def list_scheduled_jobs(
    current_user: User = Depends(get_current_user)
):
    """
    List all scheduled jobs with their status.
    Admin only.
    """
    require_role(current_user, "admin")

    return scheduler_service.get_job_status()


@router.post("/trigger")
def trigger_job(
    request: JobTriggerRequest,
    current_user: User = Depends(get_current_user)
):
    """
    Manually trigger a scheduled job.
    Admin only.
    """
    require_role(current_user, "admin")

    success = scheduler_service.trigger_job(request.job_id)

    if not success:
        raise HTTPException(status_code=404, detail="Job not found")

    return {"message": f"Job {request.job_id} triggered successfully"}


@router.get("/health")
def scheduler_health(
    current_user: User = Depends(get_current_user)
):
    """
    Get scheduler health status.
    Admin only.
    """
    require_role(current_user, "admin")

    return {
        "scheduler_running": scheduler_service.scheduler.running,
        "total_jobs": len(scheduler_service.scheduler.get_jobs()),
        "jobs": scheduler_service.get_job_status()
    }


@router.post("/auction-sweep/run", response_model=SweepReportOut)
def run_auction_sweep(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Run one settlement sweep now and report what it did.
    Admin only.
    """
    require_role(current_user, "admin")

    try:
        report = scheduler_service.sweeper.run_sweep(db)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return report.as_dict()
