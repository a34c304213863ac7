"""
Admin endpoints for the notification scheduler.

Inspect the periodic jobs, pause or resume them, and queue an immediate run.
All routes require an admin account.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status

from app.core.celery_utils import queue_task_safely
from app.core.deps import get_admin_user, get_job_registry
from app.models.user import User
from app.services.scheduler import JobRegistry
from app.tasks.notification_tasks import run_scheduled_job

router = APIRouter(prefix="/admin/scheduler", tags=["Admin"])
logger = logging.getLogger(__name__)


def _require_job(registry: JobRegistry, name: str) -> None:
    if registry.get(name) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job not found: {name}")


@router.get("/jobs")
def list_jobs(
    registry: JobRegistry = Depends(get_job_registry),
    admin_user: User = Depends(get_admin_user)
):
    """Every registered job with its running flag, description and schedule."""
    jobs = registry.info()
    return {
        "jobs": jobs,
        "total_jobs": len(jobs),
        "running_jobs": sum(1 for job in jobs.values() if job["running"]),
    }


@router.post("/jobs/{name}/run", status_code=status.HTTP_202_ACCEPTED)
def run_job(
    name: str,
    registry: JobRegistry = Depends(get_job_registry),
    admin_user: User = Depends(get_admin_user)
):
    """
    Queue an immediate run of a job on the Celery workers.

    Raises:
        HTTPException 404: Unknown job
        HTTPException 503: Broker unreachable
    """
    _require_job(registry, name)

    if not queue_task_safely(run_scheduled_job, name):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not queue the job. Please try again."
        )

    logger.info(f"Admin {admin_user.id} queued job {name}")
    return {"success": True, "message": f"Job {name} queued"}


@router.post("/jobs/{name}/stop")
def stop_job(
    name: str,
    registry: JobRegistry = Depends(get_job_registry),
    admin_user: User = Depends(get_admin_user)
):
    _require_job(registry, name)
    registry.disable(name)
    logger.info(f"Admin {admin_user.id} stopped job {name}")
    return {"success": True, "message": f"Job {name} stopped"}


@router.post("/jobs/{name}/start")
def start_job(
    name: str,
    registry: JobRegistry = Depends(get_job_registry),
    admin_user: User = Depends(get_admin_user)
):
    _require_job(registry, name)
    registry.enable(name)
    logger.info(f"Admin {admin_user.id} started job {name}")
    return {"success": True, "message": f"Job {name} started"}
