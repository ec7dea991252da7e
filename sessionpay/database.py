import logging
import os
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

SLOW_QUERY_SECONDS = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))
LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"


def _engine_kwargs(url: str) -> dict:
    """Pool settings for PostgreSQL; SQLite (local runs, tests) gets none"""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
        "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "300")),
    }


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))

if LOG_SLOW_QUERIES:

    @event.listens_for(engine, "before_cursor_execute")
    def _start_timer(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("query_started", []).append(time.monotonic())

    @event.listens_for(engine, "after_cursor_execute")
    def _log_slow_query(conn, _cursor, statement, _parameters, _context, _executemany):
        elapsed = time.monotonic() - conn.info["query_started"].pop()
        if elapsed > SLOW_QUERY_SECONDS:
            logger.warning(f"🐌 Slow query ({elapsed:.2f}s): {statement[:200]}")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency: one session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
