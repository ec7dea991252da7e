import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from . import models  # noqa: F401 - register models on Base.metadata
from .config import ENVIRONMENT, LOG_LEVEL, SCHEDULER_ENABLED
from .database import Base, engine
from .routes.health import router as health_router
from .routes.jobs import router as jobs_router
from .routes.payments import router as payments_router
from .routes.webhooks import router as webhooks_router
from .scheduler import SessionMonitorScheduler
from .services.session_monitor import build_session_monitor_job

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Gateway clients and the scheduler log every call at INFO
for noisy in ("httpx", "httpcore", "apscheduler"):
    logging.getLogger(noisy).setLevel(logging.WARNING)


def create_tables() -> None:
    """Create missing tables; concurrent workers may race on the same DDL"""
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Session tables ready")
    except Exception as e:
        if "already exists" in str(e) or "duplicate key" in str(e):
            logger.info("ℹ️ Session tables created by another worker")
        else:
            logger.error(f"❌ Could not create session tables: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 SessionPay starting ({ENVIRONMENT})")
    create_tables()

    scheduler = SessionMonitorScheduler(build_session_monitor_job())
    app.state.scheduler = scheduler
    if SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("ℹ️ In-process scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    scheduler.stop()
    await scheduler.wait_until_idle()
    logger.info("👋 SessionPay stopped")


app = FastAPI(title="SessionPay API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.monotonic()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} failed: {e}")
        raise
    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)")
    return response


app.include_router(health_router)
app.include_router(payments_router)
app.include_router(webhooks_router)
app.include_router(jobs_router)


@app.get("/")
def root():
    return {"service": "sessionpay", "status": "running"}
