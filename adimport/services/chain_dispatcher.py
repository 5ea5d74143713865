"""
Chain dispatch

Hands the next month of a chain to a fresh, independent invocation without
waiting for it. Each invocation only ever imports one month.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from adimport.config import get_settings
from adimport.utils.logger import log


class ChainDispatcher(ABC):
    """Fire-and-forget trigger for the next month import"""

    @abstractmethod
    def dispatch(self, request, delay_seconds: float = 0.0) -> None:
        """Queue an import_month invocation. Must not block on its result."""


def post_chain_trigger(payload: dict, url: str, service_key: Optional[str], timeout: float) -> None:
    """Job body for http mode: call the trigger endpoint as a new invocation."""
    headers = {"Content-Type": "application/json"}
    if service_key:
        headers["Authorization"] = f"Bearer {service_key}"

    label = f"{payload['year']}-{payload['month']:02d}"
    try:
        response = httpx.post(url, json=payload, headers=headers, timeout=timeout)
    except httpx.TimeoutException:
        # The remote invocation keeps running; only our wait gave up
        log.warning(f"[MONTH-IMPORT] Trigger for {label} still running after {timeout}s")
        return
    except httpx.HTTPError as e:
        log.error(f"[MONTH-IMPORT] Error triggering {label}: {e}")
        return

    if response.status_code >= 400:
        log.error(f"[MONTH-IMPORT] Failed to trigger {label}: {response.status_code} {response.text}")
    else:
        log.info(f"[MONTH-IMPORT] {label} triggered successfully")


def run_local_import(payload: dict) -> None:
    """Job body for local mode: run the next link in this process with its own session."""
    from adimport.models.base import SessionLocal
    from adimport.services.month_import_service import MonthImportRequest, MonthImportService

    db = SessionLocal()
    try:
        MonthImportService(db).import_month(MonthImportRequest(**payload))
    except Exception as e:
        log.error(f"[MONTH-IMPORT] Local chain link {payload} crashed: {e}")
    finally:
        db.close()


class SchedulerChainDispatcher(ChainDispatcher):
    """Queues each link as a one-shot APScheduler job."""

    def __init__(self, scheduler=None, mode: Optional[str] = None, trigger_url: Optional[str] = None):
        settings = get_settings()
        if scheduler is None:
            from adimport.scheduler import get_scheduler
            scheduler = get_scheduler()
        self.scheduler = scheduler
        self.trigger_url = trigger_url or settings.chain_trigger_url
        self.mode = mode or settings.chain_dispatch_mode or ("http" if self.trigger_url else "local")
        self.service_key = settings.sync_service_key
        self.timeout = settings.chain_trigger_timeout_seconds

        if self.mode not in ("http", "local"):
            raise ValueError(f"Unknown chain dispatch mode: {self.mode}")

    def dispatch(self, request, delay_seconds: float = 0.0) -> None:
        payload = {
            "project_id": request.project_id,
            "year": request.year,
            "month": request.month,
            "continue_chain": request.continue_chain,
            "safe_mode": request.safe_mode,
        }
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(delay_seconds, 0.0))
        # One queued job per project month; a duplicate trigger replaces it
        job_id = f"month-import:{request.project_id}:{request.year}-{request.month:02d}"

        if self.mode == "http":
            if not self.trigger_url:
                raise RuntimeError("chain_trigger_url is not configured")
            func = post_chain_trigger
            args = [payload, self.trigger_url, self.service_key, self.timeout]
        else:
            func = run_local_import
            args = [payload]

        self.scheduler.add_job(
            func,
            trigger="date",
            run_date=run_date,
            args=args,
            id=job_id,
            replace_existing=True,
        )
        log.info(
            f"[MONTH-IMPORT] Queued {request.year}-{request.month:02d} for project "
            f"{request.project_id} in {delay_seconds:.0f}s ({self.mode})"
        )
