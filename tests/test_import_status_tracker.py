"""
Import status tracker tests.

Guards against:
1. NaN / ZeroDivisionError progress for projects with no month rows
2. The live collection drifting from the store as chain links land
3. Retry actions sending the wrong chain flags
"""
from datetime import date, datetime

from adimport.models.month_import import MonthStatus
from adimport.services.change_feed import ChangeEvent, INSERT, DELETE
from adimport.services.import_status import ImportStats, MonthImportStatusTracker, calculate_progress
from adimport.services.month_import_service import MonthImportRequest, MonthImportResult
from adimport.services.month_status_store import MonthStatusStore
from tests.conftest import PROJECT_ID, run_chain

NOW = datetime(2024, 6, 15, 12, 0, 0)


class RecordingTrigger:
    def __init__(self):
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return MonthImportResult(success=True, month=f"{request.year}-{request.month:02d}")


def _tracker(db, feed, trigger=None):
    store = MonthStatusStore(db, feed)
    return MonthImportStatusTracker(PROJECT_ID, store, trigger=trigger or RecordingTrigger(), feed=feed)


def _row(row_id, year, month, status=MonthStatus.PENDING, records=0):
    return {"id": row_id, "project_id": PROJECT_ID, "year": year, "month": month,
            "status": status, "records_count": records}


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

def test_progress_is_zero_without_months(db, project, feed):
    tracker = _tracker(db, feed)
    tracker.load()

    assert tracker.stats().total == 0
    assert tracker.progress() == 0.0
    assert calculate_progress(ImportStats()) == 0.0


def test_stats_count_each_status(db, project, feed):
    store = MonthStatusStore(db, feed)
    store.seed_months(PROJECT_ID, 2024, date(2024, 6, 15))
    store.upsert(PROJECT_ID, 2024, 1, status=MonthStatus.SUCCESS, records_count=31, completed_at=NOW)
    store.upsert(PROJECT_ID, 2024, 2, status=MonthStatus.SUCCESS, records_count=29, completed_at=NOW)
    store.upsert(PROJECT_ID, 2024, 3, status=MonthStatus.ERROR, error_message="x", completed_at=NOW)
    store.mark_skipped(PROJECT_ID, 2024, 4, NOW)
    store.claim(PROJECT_ID, 2024, 5, NOW)

    tracker = _tracker(db, feed)
    tracker.load()
    stats = tracker.stats()

    assert stats.to_dict() == {
        "total": 6, "pending": 1, "importing": 1, "success": 2,
        "error": 1, "skipped": 1, "total_records": 60,
    }
    assert tracker.progress() == 50.0


def test_progress_reaches_100_after_successful_chain(db, project, feed, service, dispatcher):
    MonthStatusStore(db, feed).seed_months(PROJECT_ID, 2024, date(2024, 6, 15))

    with _tracker(db, feed) as tracker:
        assert tracker.progress() == 0.0
        run_chain(service, dispatcher, MonthImportRequest(PROJECT_ID, 2024, 1, continue_chain=True))

        # Updated from the change feed, no reload
        assert tracker.stats().success == 6
        assert tracker.progress() == 100.0
        assert tracker.stats().total_records == 180

    assert feed.subscriber_count(PROJECT_ID) == 0


def test_months_grouped_by_year(db, project, feed):
    MonthStatusStore(db, feed).seed_months(PROJECT_ID, 2023, date(2024, 2, 1))
    tracker = _tracker(db, feed)
    tracker.load()

    grouped = tracker.months_by_year()
    assert sorted(grouped) == [2023, 2024]
    assert len(grouped[2023]) == 12
    assert [m["month"] for m in grouped[2024]] == [1, 2]


def test_snapshot_shape(db, project, feed):
    MonthStatusStore(db, feed).seed_months(PROJECT_ID, 2024, date(2024, 2, 1))
    tracker = _tracker(db, feed)
    tracker.load()

    snapshot = tracker.snapshot()
    assert snapshot["project_id"] == PROJECT_ID
    assert snapshot["stats"]["total"] == 2
    assert snapshot["progress"] == 0.0
    assert snapshot["retrying"] is None


# ---------------------------------------------------------------------------
# Change events
# ---------------------------------------------------------------------------

def test_insert_event_keeps_chronological_order(db, project, feed):
    tracker = _tracker(db, feed)
    tracker.apply_change(ChangeEvent(INSERT, PROJECT_ID, new=_row(1, 2024, 3)))
    tracker.apply_change(ChangeEvent(INSERT, PROJECT_ID, new=_row(2, 2023, 11)))
    tracker.apply_change(ChangeEvent(INSERT, PROJECT_ID, new=_row(3, 2024, 1)))

    assert [(m["year"], m["month"]) for m in tracker.months] == [(2023, 11), (2024, 1), (2024, 3)]


def test_delete_event_removes_row(db, project, feed):
    tracker = _tracker(db, feed)
    tracker.apply_change(ChangeEvent(INSERT, PROJECT_ID, new=_row(1, 2024, 1)))
    tracker.apply_change(ChangeEvent(DELETE, PROJECT_ID, old=_row(1, 2024, 1)))

    assert tracker.months == []


def test_events_for_other_projects_ignored(db, project, feed):
    tracker = _tracker(db, feed)
    tracker.apply_change(ChangeEvent(INSERT, "other-project", new=_row(1, 2024, 1)))

    assert tracker.months == []


def test_live_updates_follow_store_writes(db, project, feed):
    store = MonthStatusStore(db, feed)
    with _tracker(db, feed) as tracker:
        store.claim(PROJECT_ID, 2024, 1, NOW)
        assert tracker.stats().importing == 1

        store.upsert(PROJECT_ID, 2024, 1, status=MonthStatus.ERROR, error_message="boom", completed_at=NOW)
        assert tracker.months[0]["error_message"] == "boom"

        store.delete_months(PROJECT_ID)
        assert tracker.months == []


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def test_retry_month_does_not_chain(db, project, feed):
    trigger = RecordingTrigger()
    tracker = _tracker(db, feed, trigger)

    tracker.retry_month(2024, 3)

    request = trigger.requests[0]
    assert (request.year, request.month) == (2024, 3)
    assert request.continue_chain is False
    assert request.safe_mode is True
    assert tracker.retrying is None


def test_retry_all_failed_resumes_from_first_error(db, project, feed):
    store = MonthStatusStore(db, feed)
    store.seed_months(PROJECT_ID, 2024, date(2024, 6, 15))
    store.upsert(PROJECT_ID, 2024, 4, status=MonthStatus.ERROR, error_message="a", completed_at=NOW)
    store.upsert(PROJECT_ID, 2024, 2, status=MonthStatus.ERROR, error_message="b", completed_at=NOW)
    trigger = RecordingTrigger()
    tracker = _tracker(db, feed, trigger)
    tracker.load()

    result = tracker.retry_all_failed()

    assert len(trigger.requests) == 1
    request = trigger.requests[0]
    assert (request.year, request.month) == (2024, 2)
    assert request.continue_chain is True
    assert result.message == "Chained retry started (2 failed months)"


def test_retry_all_failed_without_errors_is_noop(db, project, feed):
    MonthStatusStore(db, feed).seed_months(PROJECT_ID, 2024, date(2024, 3, 1))
    trigger = RecordingTrigger()
    tracker = _tracker(db, feed, trigger)
    tracker.load()

    result = tracker.retry_all_failed()

    assert result.success is True
    assert result.message == "No failed months to retry"
    assert trigger.requests == []


def test_start_chained_import(db, project, feed):
    trigger = RecordingTrigger()
    tracker = _tracker(db, feed, trigger)

    tracker.start_chained_import(2023, 7)

    request = trigger.requests[0]
    assert (request.year, request.month, request.continue_chain) == (2023, 7, True)


def test_retry_all_failed_sweeps_later_months(db, project, feed, service, dispatcher):
    """Resuming from the first error re-imports every later month, successful ones too."""
    store = MonthStatusStore(db, feed)
    store.seed_months(PROJECT_ID, 2024, date(2024, 6, 15))
    store.upsert(PROJECT_ID, 2024, 4, status=MonthStatus.ERROR, error_message="a", completed_at=NOW, retry_count=1)
    store.upsert(PROJECT_ID, 2024, 5, status=MonthStatus.SUCCESS, records_count=10, completed_at=NOW, retry_count=1)

    tracker = MonthImportStatusTracker(PROJECT_ID, store, trigger=service.import_month, feed=feed)
    tracker.load()
    tracker.subscribe()
    tracker.retry_all_failed()
    while dispatcher.queued:
        request, _delay = dispatcher.queued.pop(0)
        service.import_month(request)
    tracker.close()

    by_month = {m["month"]: m for m in tracker.months}
    assert by_month[4]["status"] == MonthStatus.SUCCESS
    assert by_month[5]["retry_count"] == 2
    assert by_month[6]["status"] == MonthStatus.SUCCESS
    assert by_month[1]["status"] == MonthStatus.PENDING
