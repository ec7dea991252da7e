"""
Session monitor job control
Operational endpoints for the in-process scheduler, gated by X-Admin-Key
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..domain.notifications.repository import NotificationRepository
from ..scheduler import SessionMonitorScheduler
from ..schemas import NotificationResponse
from ..webhook_security import constant_time_compare

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs/session-monitor", tags=["jobs"])


def require_admin_key(x_admin_key: Optional[str] = Header(default=None)) -> None:
    if not config.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Job control disabled")
    if not constant_time_compare(x_admin_key or "", config.ADMIN_API_KEY):
        logger.warning("🚫 Rejected job control request with invalid admin key")
        raise HTTPException(status_code=403, detail="Invalid admin key")


def get_scheduler(request: Request) -> SessionMonitorScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not configured")
    return scheduler


@router.get("", dependencies=[Depends(require_admin_key)])
def get_status(scheduler: SessionMonitorScheduler = Depends(get_scheduler)):
    return scheduler.status()


@router.post("/run", dependencies=[Depends(require_admin_key)])
async def run_now(scheduler: SessionMonitorScheduler = Depends(get_scheduler)):
    """Run the job now and wait for it; skipped if a run is in flight"""
    ran = await scheduler.run_now()
    if not ran:
        raise HTTPException(status_code=409, detail="Session monitor already running")
    return {"status": "completed", "summary": scheduler.last_summary}


@router.post("/start", dependencies=[Depends(require_admin_key)])
async def start(scheduler: SessionMonitorScheduler = Depends(get_scheduler)):
    try:
        scheduler.start()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return scheduler.status()


@router.post("/stop", dependencies=[Depends(require_admin_key)])
async def stop(scheduler: SessionMonitorScheduler = Depends(get_scheduler)):
    scheduler.stop()
    return scheduler.status()


@router.get(
    "/failed-notifications",
    dependencies=[Depends(require_admin_key)],
    response_model=list[NotificationResponse],
)
def failed_notifications(limit: int = Query(default=50, ge=1, le=500), db: Session = Depends(get_db)):
    """Failed delivery attempts, newest first"""
    return NotificationRepository.get_failed_notifications(db, limit=limit)
