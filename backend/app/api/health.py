from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.db import engine
from app.logger import logger

router = APIRouter()


@router.get("/health", tags=["health"])
def health(request: Request):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError:
        logger.exception("health check: database unreachable")

    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_ok = scheduler is not None and scheduler.running

    return {
        "status": "ok" if db_ok else "degraded",
        "db": db_ok,
        "auto_advance_scheduler": scheduler_ok,
    }
