"""
Month Status Store

Durable access to project_import_months keyed by (project_id, year, month).
All writes are single-row and committed immediately; no write spans months.
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adimport.models.month_import import MonthImportRecord, MonthStatus
from adimport.services.change_feed import ChangeEvent, ChangeFeed, change_feed, INSERT, UPDATE, DELETE
from adimport.utils.logger import log
from adimport.utils.months import iter_months


class MonthStatusStore:
    """Reads and upserts month import rows, publishing every committed change."""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed if feed is not None else change_feed

    # ── reads ───────────────────────────────────────────────────────
    def get(self, project_id: str, year: int, month: int) -> Optional[MonthImportRecord]:
        return self.db.query(MonthImportRecord).filter(
            MonthImportRecord.project_id == project_id,
            MonthImportRecord.year == year,
            MonthImportRecord.month == month,
        ).first()

    def list_by_project(self, project_id: str) -> List[MonthImportRecord]:
        """All month rows for a project, oldest month first."""
        return self.db.query(MonthImportRecord).filter(
            MonthImportRecord.project_id == project_id
        ).order_by(
            MonthImportRecord.year.asc(),
            MonthImportRecord.month.asc(),
        ).all()

    # ── writes ──────────────────────────────────────────────────────
    def upsert(self, project_id: str, year: int, month: int, **fields) -> MonthImportRecord:
        """
        Insert the month row if absent, otherwise update it in place.

        A concurrent insert of the same month loses on the unique key and
        falls back to updating the row that won.
        """
        record = self.get(project_id, year, month)
        if record is None:
            record = MonthImportRecord(project_id=project_id, year=year, month=month, **fields)
            self.db.add(record)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                record = self.get(project_id, year, month)
                if record is None:
                    raise
            else:
                self.db.refresh(record)
                self._publish(INSERT, record)
                return record

        for key, value in fields.items():
            setattr(record, key, value)
        self.db.commit()
        self.db.refresh(record)
        self._publish(UPDATE, record)
        return record

    def claim(
        self,
        project_id: str,
        year: int,
        month: int,
        now: datetime,
        stale_before: Optional[datetime] = None,
    ) -> Optional[MonthImportRecord]:
        """
        Move the month to importing unless another attempt already holds it.

        Conditional UPDATE (status != importing) so two racing triggers for the
        same month cannot both start. An importing row whose started_at is
        older than stale_before counts as abandoned and can be claimed.

        Returns the claimed row, or None when the month is already importing.
        """
        claimed_values = {
            "status": MonthStatus.IMPORTING,
            "started_at": now,
            "completed_at": None,
            "error_message": None,
            "records_count": 0,
        }

        claimable = [
            MonthImportRecord.status != MonthStatus.IMPORTING,
            MonthImportRecord.started_at.is_(None),
        ]
        if stale_before is not None:
            claimable.append(MonthImportRecord.started_at < stale_before)

        stmt = (
            update(MonthImportRecord)
            .where(
                MonthImportRecord.project_id == project_id,
                MonthImportRecord.year == year,
                MonthImportRecord.month == month,
                or_(*claimable),
            )
            .values(**claimed_values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()

        if result.rowcount == 1:
            record = self.get(project_id, year, month)
            self.db.refresh(record)
            self._publish(UPDATE, record)
            return record

        if self.get(project_id, year, month) is not None:
            return None

        # No row yet: first attempt for this month
        record = MonthImportRecord(project_id=project_id, year=year, month=month, **claimed_values)
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.get(project_id, year, month) is None:
                raise
            # Another trigger inserted the row first; compete for it via the conditional update
            return self.claim(project_id, year, month, now, stale_before)

        self.db.refresh(record)
        self._publish(INSERT, record)
        return record

    def seed_months(self, project_id: str, start_year: int, today: date) -> List[MonthImportRecord]:
        """Create pending rows from January of start_year through the current month."""
        existing = {
            (r.year, r.month) for r in self.list_by_project(project_id)
        }
        created = []
        for year, month in iter_months(start_year, 1, today.year, today.month):
            if (year, month) in existing:
                continue
            record = MonthImportRecord(
                project_id=project_id,
                year=year,
                month=month,
                status=MonthStatus.PENDING,
            )
            self.db.add(record)
            created.append(record)

        if not created:
            return []

        self.db.commit()
        for record in created:
            self.db.refresh(record)
            self._publish(INSERT, record)

        log.info(f"Seeded {len(created)} pending months for project {project_id}")
        return created

    def mark_skipped(self, project_id: str, year: int, month: int, now: datetime) -> Optional[MonthImportRecord]:
        """Exclude a month from import. Refuses a month that is currently importing."""
        record = self.get(project_id, year, month)
        if record is not None and record.status == MonthStatus.IMPORTING:
            return None
        return self.upsert(
            project_id, year, month,
            status=MonthStatus.SKIPPED,
            records_count=0,
            error_message=None,
            completed_at=now,
        )

    def delete_months(self, project_id: str) -> int:
        """Remove a project's import history (used when its data is reset)."""
        records = self.list_by_project(project_id)
        snapshots = [r.to_dict() for r in records]
        for record in records:
            self.db.delete(record)
        self.db.commit()

        for snapshot in snapshots:
            self.feed.publish(ChangeEvent(DELETE, project_id, old=snapshot))
        return len(snapshots)

    def _publish(self, event_type: str, record: MonthImportRecord) -> None:
        self.feed.publish(ChangeEvent(event_type, record.project_id, new=record.to_dict()))
