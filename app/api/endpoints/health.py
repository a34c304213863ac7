"""
Health check and monitoring endpoints.

Provides health status for the database plus a few operational counters.
"""

import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from sqlalchemy import func, text

from app.core.clock import utcnow
from app.core.database import get_db

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """
    Basic health check endpoint.

    Returns 200 OK if the service is running.
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat()
    }


@router.get("/health/detailed", status_code=status.HTTP_200_OK)
def detailed_health_check(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Returns 200 with status "unhealthy" and the failing component when
    the database cannot be reached.
    """
    health_status = {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "checks": {}
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database error: {str(e)}"
        }

    return health_status


@router.get("/metrics", status_code=status.HTTP_200_OK)
def get_metrics(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Basic operational counters: users, applications, unread notifications
    and live verification codes.
    """
    from app.models.application import Application
    from app.models.notification import Notification
    from app.models.user import User
    from app.models.verification import VerificationCode

    now = utcnow()
    try:
        return {
            "timestamp": now.isoformat(),
            "metrics": {
                "total_users": db.query(func.count(User.id)).scalar() or 0,
                "total_applications": db.query(func.count(Application.id)).scalar() or 0,
                "unread_notifications": db.query(func.count(Notification.id)).filter(
                    Notification.is_read == False  # noqa: E712
                ).scalar() or 0,
                "active_verification_codes": db.query(func.count(VerificationCode.id)).filter(
                    VerificationCode.is_used == False,  # noqa: E712
                    VerificationCode.expires_at > now
                ).scalar() or 0,
            }
        }
    except Exception as e:
        logger.error(f"Failed to retrieve metrics: {e}")
        return {
            "error": "Failed to retrieve metrics",
            "message": str(e)
        }
