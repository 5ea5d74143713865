"""
Month-by-month import endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adimport.config import get_settings
from adimport.models.base import get_db
from adimport.models.project import Project
from adimport.services.import_status import MonthImportStatusTracker
from adimport.services.month_import_service import (
    MonthImportRequest,
    MonthImportResult,
    MonthImportService,
)
from adimport.utils.logger import log
from adimport.utils.months import is_after_month

router = APIRouter(prefix="/imports", tags=["imports"])


class MonthImportPayload(BaseModel):
    project_id: str
    year: int
    month: int
    continue_chain: bool = False
    safe_mode: bool = True


class ChainStartPayload(BaseModel):
    year: int
    month: int


class SeedPayload(BaseModel):
    start_year: Optional[int] = None
    start: bool = False  # queue a chain from the first seeded month


def get_import_service(db: Session = Depends(get_db)) -> MonthImportService:
    return MonthImportService(db)


def _tracker(project_id: str, service: MonthImportService) -> MonthImportStatusTracker:
    tracker = MonthImportStatusTracker(project_id, service.store, trigger=service.import_month)
    tracker.load()
    return tracker


def _respond(result: MonthImportResult):
    """Validation failures are client errors; everything else is a 200 with a structured body."""
    if not result.success and result.month is None:
        return JSONResponse(status_code=400, content=result.to_dict())
    return result.to_dict()


def _require_project(service: MonthImportService, project_id: str) -> Project:
    project = service.db.get(Project, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return project


@router.post("/month")
def import_month(payload: MonthImportPayload, service: MonthImportService = Depends(get_import_service)):
    """
    Import one month; with continue_chain the next month is queued as a new invocation.

    Example: POST /imports/month {"project_id": "...", "year": 2025, "month": 1, "continue_chain": true}
    """
    result = service.import_month(MonthImportRequest(**payload.model_dump()))
    return _respond(result)


@router.get("/{project_id}/months")
def list_months(project_id: str, service: MonthImportService = Depends(get_import_service)):
    """All month rows for a project, oldest first."""
    return [r.to_dict() for r in service.store.list_by_project(project_id)]


@router.get("/{project_id}/status")
def get_import_status(project_id: str, service: MonthImportService = Depends(get_import_service)):
    """Per-status counts, total records, progress % and months grouped by year."""
    return _tracker(project_id, service).snapshot()


@router.post("/{project_id}/months/{year}/{month}/retry")
def retry_month(project_id: str, year: int, month: int, service: MonthImportService = Depends(get_import_service)):
    return _respond(_tracker(project_id, service).retry_month(year, month))


@router.post("/{project_id}/retry-failed")
def retry_all_failed(project_id: str, service: MonthImportService = Depends(get_import_service)):
    """Resume the chain from the earliest failed month."""
    return _respond(_tracker(project_id, service).retry_all_failed())


@router.post("/{project_id}/chain")
def start_chained_import(project_id: str, payload: ChainStartPayload, service: MonthImportService = Depends(get_import_service)):
    return _respond(_tracker(project_id, service).start_chained_import(payload.year, payload.month))


@router.post("/{project_id}/seed")
def seed_months(project_id: str, payload: SeedPayload, service: MonthImportService = Depends(get_import_service)):
    """
    Create pending rows from January of start_year through the current month.

    With start=true a chain is queued from the first month of start_year.
    """
    _require_project(service, project_id)
    start_year = payload.start_year or get_settings().default_start_year
    today = service.now().date()
    if start_year > today.year:
        raise HTTPException(status_code=400, detail=f"start_year {start_year} is in the future")

    created = service.store.seed_months(project_id, start_year, today)
    response = {"project_id": project_id, "months_created": len(created), "chain": None}

    if payload.start:
        result = service.enqueue(MonthImportRequest(
            project_id=project_id,
            year=start_year,
            month=1,
            continue_chain=True,
            safe_mode=True,
        ))
        response["chain"] = result.to_dict()
        log.info(f"Chained import queued for project {project_id} from Jan {start_year}")
    return response


@router.post("/{project_id}/months/{year}/{month}/skip")
def skip_month(project_id: str, year: int, month: int, service: MonthImportService = Depends(get_import_service)):
    """Exclude a month from import; it then counts as done for progress."""
    _require_project(service, project_id)
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    if is_after_month(year, month, service.now().date()):
        raise HTTPException(status_code=400, detail="Cannot skip a future month")
    record = service.store.mark_skipped(project_id, year, month, service.now())
    if record is None:
        raise HTTPException(status_code=409, detail="Month is currently importing")
    return record.to_dict()


@router.delete("/{project_id}/months")
def reset_months(project_id: str, service: MonthImportService = Depends(get_import_service)):
    """Delete a project's import history."""
    deleted = service.store.delete_months(project_id)
    return {"project_id": project_id, "months_deleted": deleted}
