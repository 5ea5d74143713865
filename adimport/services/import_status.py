"""
Month import status tracker

Keeps a live, ordered copy of one project's month rows (bulk load plus change
feed) and derives the progress numbers the dashboard shows. Retry and resume
actions go through the same import_month entry point as everything else.
"""
import threading
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

from adimport.models.month_import import MonthStatus
from adimport.services.change_feed import ChangeEvent, ChangeFeed, INSERT, UPDATE, DELETE
from adimport.services.month_import_service import MonthImportRequest, MonthImportResult
from adimport.services.month_status_store import MonthStatusStore
from adimport.utils.logger import log
from adimport.utils.months import month_label


@dataclass
class ImportStats:
    total: int = 0
    pending: int = 0
    importing: int = 0
    success: int = 0
    error: int = 0
    skipped: int = 0
    total_records: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _month_sort_key(row: dict):
    return row["year"], row["month"]


def calculate_progress(stats: ImportStats) -> float:
    """Share of months that are done (success or skipped), 0-100. No months = 0."""
    if stats.total == 0:
        return 0.0
    return (stats.success + stats.skipped) / stats.total * 100


class MonthImportStatusTracker:
    """Live month status for one project."""

    def __init__(
        self,
        project_id: str,
        store: MonthStatusStore,
        trigger: Callable[[MonthImportRequest], MonthImportResult],
        feed: Optional[ChangeFeed] = None,
    ):
        self.project_id = project_id
        self.store = store
        self.trigger = trigger
        self.feed = feed if feed is not None else store.feed
        self.retrying: Optional[str] = None  # "YYYY-M" of the month being retried
        self._months: List[dict] = []
        self._lock = threading.Lock()
        self._unsubscribe = None

    # ── collection ──────────────────────────────────────────────────
    def load(self) -> List[dict]:
        """Replace the collection with a fresh read from the store."""
        rows = [r.to_dict() for r in self.store.list_by_project(self.project_id)]
        with self._lock:
            self._months = rows
        return self.months

    def subscribe(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.feed.subscribe(self.project_id, self.apply_change)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self):
        self.load()
        self.subscribe()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def apply_change(self, event: ChangeEvent) -> None:
        if event.project_id != self.project_id:
            return

        with self._lock:
            if event.event_type == INSERT and event.new:
                rows = [m for m in self._months if m["id"] != event.new["id"]]
                rows.append(event.new)
                self._months = sorted(rows, key=_month_sort_key)
            elif event.event_type == UPDATE and event.new:
                self._months = [
                    event.new if m["id"] == event.new["id"] else m
                    for m in self._months
                ]
            elif event.event_type == DELETE and event.old:
                self._months = [m for m in self._months if m["id"] != event.old["id"]]

    @property
    def months(self) -> List[dict]:
        with self._lock:
            return list(self._months)

    def months_by_year(self) -> Dict[int, List[dict]]:
        grouped: Dict[int, List[dict]] = {}
        for row in self.months:
            grouped.setdefault(row["year"], []).append(row)
        return grouped

    # ── derived numbers ─────────────────────────────────────────────
    def stats(self) -> ImportStats:
        stats = ImportStats()
        for row in self.months:
            stats.total += 1
            status = row["status"]
            if status in MonthStatus.ALL:
                setattr(stats, status, getattr(stats, status) + 1)
            stats.total_records += row.get("records_count") or 0
        return stats

    def progress(self) -> float:
        return calculate_progress(self.stats())

    def snapshot(self) -> dict:
        stats = self.stats()
        return {
            "project_id": self.project_id,
            "stats": stats.to_dict(),
            "progress": round(calculate_progress(stats), 2),
            "months_by_year": self.months_by_year(),
            "retrying": self.retrying,
        }

    # ── actions ─────────────────────────────────────────────────────
    def retry_month(self, year: int, month: int) -> MonthImportResult:
        """Re-import a single month without continuing the chain."""
        self.retrying = f"{year}-{month}"
        try:
            result = self.trigger(MonthImportRequest(
                project_id=self.project_id,
                year=year,
                month=month,
                continue_chain=False,
                safe_mode=True,
            ))
        finally:
            self.retrying = None
        log.info(f"Retry requested for {month_label(year, month)} (project {self.project_id})")
        return result

    def retry_all_failed(self) -> MonthImportResult:
        """
        Resume the chain from the earliest failed month.

        Every month after it is re-imported too, successful ones included.
        """
        failed = [m for m in self.months if m["status"] == MonthStatus.ERROR]
        if not failed:
            return MonthImportResult(success=True, message="No failed months to retry")

        first = failed[0]
        log.info(
            f"Retrying {len(failed)} failed months from {month_label(first['year'], first['month'])} "
            f"(project {self.project_id})"
        )
        result = self.trigger(MonthImportRequest(
            project_id=self.project_id,
            year=first["year"],
            month=first["month"],
            continue_chain=True,
            safe_mode=True,
        ))
        if result.message is None:
            result.message = f"Chained retry started ({len(failed)} failed months)"
        return result

    def start_chained_import(self, year: int, month: int) -> MonthImportResult:
        """Begin or resume a chain at any month."""
        return self.trigger(MonthImportRequest(
            project_id=self.project_id,
            year=year,
            month=month,
            continue_chain=True,
            safe_mode=True,
        ))
