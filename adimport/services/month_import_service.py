"""
Month-by-month import orchestration.

Each call imports exactly one calendar month of a project's ad history:

    claim month (importing) → sync the month's date range → record success/error
    → audit log → queue the next month when chaining

A chain walks forward one month per invocation until it reaches the current
month. A failed month is recorded and the chain keeps going, so one bad month
never blocks the months after it.
"""
import json
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adimport.config import get_settings
from adimport.connectors.meta_ads_sync import MetaAdsSyncClient
from adimport.models.month_import import MonthStatus
from adimport.models.project import Project
from adimport.models.sync_log import SyncLog
from adimport.services.chain_dispatcher import ChainDispatcher, SchedulerChainDispatcher
from adimport.services.change_feed import ChangeFeed
from adimport.services.month_status_store import MonthStatusStore
from adimport.utils.logger import log
from adimport.utils.months import (
    is_after_month,
    month_date_range,
    month_key,
    month_label,
    next_month,
)
from adimport.utils.retry import retry_sync

PERSIST_RETRY_ATTEMPTS = 3
PERSIST_RETRY_BASE_DELAY = 0.5  # seconds


class InvalidMonthError(ValueError):
    """Request names a month that cannot be imported."""


class ProjectConfigurationError(Exception):
    """Project is missing or has no ad account to sync from."""


@dataclass
class MonthImportRequest:
    project_id: str
    year: int
    month: int
    continue_chain: bool = False
    safe_mode: bool = True


@dataclass
class MonthImportResult:
    success: bool
    month: Optional[str] = None  # YYYY-MM
    records: Optional[int] = None
    error: Optional[str] = None
    message: Optional[str] = None
    next_month_triggered: bool = False
    skipped: bool = False

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


class MonthImportService:
    """Imports one month per call and optionally queues the next one."""

    def __init__(
        self,
        db: Session,
        sync_client=None,
        dispatcher: Optional[ChainDispatcher] = None,
        feed: Optional[ChangeFeed] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.store = MonthStatusStore(db, feed)
        self.sync_client = sync_client if sync_client is not None else MetaAdsSyncClient()
        self._dispatcher = dispatcher
        self._clock = clock or datetime.utcnow

    @property
    def dispatcher(self) -> ChainDispatcher:
        if self._dispatcher is None:
            self._dispatcher = SchedulerChainDispatcher()
        return self._dispatcher

    def now(self) -> datetime:
        return self._clock()

    # ── public entry points ─────────────────────────────────────────
    def import_month(self, request: MonthImportRequest) -> MonthImportResult:
        """
        Import one month and, when continue_chain is set, queue the next.

        Always returns a structured result; sync failures are recorded on the
        month row rather than raised.
        """
        try:
            self.validate(request)
        except InvalidMonthError as e:
            log.warning(f"[MONTH-IMPORT] Rejected request {request}: {e}")
            return MonthImportResult(success=False, error=str(e))

        label = month_label(request.year, request.month)
        month_str = f"{request.year}-{request.month:02d}"
        log.info(
            f"[MONTH-IMPORT] {label} for project {request.project_id} "
            f"(continue_chain={request.continue_chain}, safe_mode={request.safe_mode})"
        )

        if self.db.get(Project, request.project_id) is None:
            # No row can reference a missing project; report it and let the chain move on
            error = f"Project not found: {request.project_id}"
            log.error(f"[MONTH-IMPORT] ✗ {label} failed: {error}")
            next_triggered = False
            if request.continue_chain:
                next_triggered = self._trigger_next(request, failed=True)
            return MonthImportResult(
                success=False,
                month=month_str,
                error=error,
                next_month_triggered=next_triggered,
            )

        now = self.now()
        stale_before = None
        if self.settings.stale_import_minutes > 0:
            stale_before = now - timedelta(minutes=self.settings.stale_import_minutes)

        record = self.store.claim(request.project_id, request.year, request.month, now, stale_before)
        if record is None:
            log.info(f"[MONTH-IMPORT] {label} already importing, skipping duplicate trigger")
            return MonthImportResult(
                success=True,
                month=month_str,
                skipped=True,
                message=f"{label} is already being imported",
            )
        attempts = (record.retry_count or 0) + 1

        records_count = None
        error = None
        try:
            records_count = self._sync_month(request)
            log.info(f"[MONTH-IMPORT] ✓ {label}: {records_count} records")
        except Exception as e:
            error = str(e) or type(e).__name__
            log.error(f"[MONTH-IMPORT] ✗ {label} failed: {error}")

        persist_error = None
        try:
            self._record_outcome(request, records_count, error, attempts=attempts)
        except SQLAlchemyError as e:
            persist_error = f"Failed to record {label} status: {e}"
            log.error(f"[MONTH-IMPORT] {persist_error}")

        next_triggered = False
        if request.continue_chain:
            next_triggered = self._trigger_next(request, failed=error is not None)

        if persist_error:
            return MonthImportResult(
                success=False,
                month=month_str,
                records=records_count,
                error=persist_error,
                next_month_triggered=next_triggered,
            )
        if error is not None:
            return MonthImportResult(
                success=False,
                month=month_str,
                error=error,
                next_month_triggered=next_triggered,
            )
        return MonthImportResult(
            success=True,
            month=month_str,
            records=records_count,
            message=f"Imported {records_count} records for {label}",
            next_month_triggered=next_triggered,
        )

    def enqueue(self, request: MonthImportRequest, delay_seconds: float = 0.0) -> MonthImportResult:
        """Start an import in a separate invocation and return at once."""
        try:
            self.validate(request)
        except InvalidMonthError as e:
            return MonthImportResult(success=False, error=str(e))

        label = month_label(request.year, request.month)
        self.dispatcher.dispatch(request, delay_seconds=delay_seconds)
        return MonthImportResult(
            success=True,
            month=f"{request.year}-{request.month:02d}",
            message=f"Import started for {label}",
        )

    def validate(self, request: MonthImportRequest) -> None:
        if not request.project_id:
            raise InvalidMonthError("Missing required field: project_id")
        if not 1 <= request.month <= 12:
            raise InvalidMonthError("Month must be between 1 and 12")
        if is_after_month(request.year, request.month, self.now().date()):
            raise InvalidMonthError(
                f"{month_label(request.year, request.month)} is in the future"
            )

    # ── steps ───────────────────────────────────────────────────────
    def _sync_month(self, request: MonthImportRequest) -> int:
        project = self.db.get(Project, request.project_id)
        if project is None:
            raise ProjectConfigurationError(f"Project not found: {request.project_id}")
        if not project.ad_account_id:
            raise ProjectConfigurationError(f"Project {project.name} has no ad account configured")

        since, until = month_date_range(request.year, request.month)
        log.info(f"[MONTH-IMPORT] Project {project.name}: {since} to {until}")

        result = self.sync_client.sync_month(request.project_id, project.ad_account_id, since, until)
        return result.records_count

    @retry_sync(
        max_attempts=PERSIST_RETRY_ATTEMPTS,
        base_delay=PERSIST_RETRY_BASE_DELAY,
        retryable_exceptions=(SQLAlchemyError,),
    )
    def _record_outcome(
        self,
        request: MonthImportRequest,
        records_count: Optional[int],
        error: Optional[str],
        attempts: int,
    ) -> None:
        """
        Write the terminal status and the audit entry for this attempt.

        attempts is the retry_count this attempt ends with, taken once at claim
        time.
        """
        try:
            completed_at = self.now()

            if error is None:
                self.store.upsert(
                    request.project_id, request.year, request.month,
                    status=MonthStatus.SUCCESS,
                    records_count=records_count,
                    completed_at=completed_at,
                    error_message=None,
                    retry_count=attempts,
                )
            else:
                self.store.upsert(
                    request.project_id, request.year, request.month,
                    status=MonthStatus.ERROR,
                    records_count=0,
                    completed_at=completed_at,
                    error_message=error,
                    retry_count=attempts,
                )

            self._write_sync_log(request, records_count, error)
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _write_sync_log(self, request: MonthImportRequest, records_count: Optional[int], error: Optional[str]) -> None:
        summary = {
            "type": "month_import",
            "month": month_key(request.year, request.month),
            "month_name": month_label(request.year, request.month),
        }
        if error is None:
            summary["records"] = records_count
        else:
            summary["error"] = error

        # Projects that vanished mid-chain have nothing to attach a log to
        if self.db.get(Project, request.project_id) is None:
            return

        self.db.add(SyncLog(
            project_id=request.project_id,
            status="success" if error is None else "error",
            message=json.dumps(summary),
        ))
        self.db.commit()

    def _chain_delay(self, safe_mode: bool, failed: bool) -> float:
        if failed:
            return self.settings.error_delay_seconds
        if safe_mode:
            return self.settings.safe_mode_delay_seconds
        return self.settings.chain_delay_seconds

    def _trigger_next(self, request: MonthImportRequest, failed: bool) -> bool:
        """Queue the following month unless it is past the current month."""
        year, month = next_month(request.year, request.month)
        if is_after_month(year, month, self.now().date()):
            log.info("[MONTH-IMPORT] No more months to import (reached current month)")
            return False

        next_request = MonthImportRequest(
            project_id=request.project_id,
            year=year,
            month=month,
            continue_chain=True,
            safe_mode=request.safe_mode,
        )
        delay = self._chain_delay(request.safe_mode, failed)
        try:
            self.dispatcher.dispatch(next_request, delay_seconds=delay)
        except Exception as e:
            log.error(f"[MONTH-IMPORT] Could not queue {month_label(year, month)}: {e}")
            return False

        log.info(f"[MONTH-IMPORT] Next month queued: {month_label(year, month)} in {delay:.0f}s")
        return True
