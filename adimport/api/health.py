"""
Liveness and chain status
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adimport import __version__
from adimport.config import get_settings
from adimport.models.base import get_db
from adimport.models.month_import import MonthImportRecord, MonthStatus
from adimport.scheduler import get_scheduler
from adimport.utils.logger import log

router = APIRouter()


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the month status database."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.error(f"Health check database error: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unreachable", "version": __version__},
        )
    return {
        "status": "healthy",
        "database": "ok",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/status")
def get_status(db: Session = Depends(get_db)):
    """Queued chain links and month counts per status across all projects."""
    settings = get_settings()
    scheduler = get_scheduler()
    rows = (
        db.query(MonthImportRecord.status, func.count(MonthImportRecord.id))
        .group_by(MonthImportRecord.status)
        .all()
    )
    months = {status: 0 for status in MonthStatus.ALL}
    months.update({status: count for status, count in rows})

    return {
        "app_name": settings.app_name,
        "version": __version__,
        "chain": {
            "dispatch_mode": settings.chain_dispatch_mode or ("http" if settings.chain_trigger_url else "local"),
            "scheduler_running": scheduler.running,
            "queued_links": len(scheduler.get_jobs()),
        },
        "months": months,
    }
