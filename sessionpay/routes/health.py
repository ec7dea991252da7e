import logging
import time

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..database import get_db
from ..shared.validators import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()


def database_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        logger.error(f"❌ Database health check failed: {e}")
        return "unavailable"


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "uptime_seconds": int(time.monotonic() - STARTED_AT),
        "database": database_status(db),
        "scheduler": {
            "active": scheduler.is_active if scheduler else False,
            "running": scheduler.is_running if scheduler else False,
        },
    }
