"""
Month Import Status Models

One row per (project, calendar month) tracking the lifecycle of that month's
import attempts. Retries update the same row.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint, CheckConstraint
)
from datetime import datetime

from adimport.models.base import Base


class MonthStatus:
    """Allowed values for MonthImportRecord.status"""
    PENDING = "pending"
    IMPORTING = "importing"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"

    ALL = (PENDING, IMPORTING, SUCCESS, ERROR, SKIPPED)
    TERMINAL = (SUCCESS, ERROR, SKIPPED)


class MonthImportRecord(Base):
    """
    Import status of one calendar month for one project

    pending/error -> importing -> success | error
    skipped is only ever set administratively.
    """
    __tablename__ = "project_import_months"
    __table_args__ = (
        UniqueConstraint("project_id", "year", "month", name="uq_project_import_months_project_year_month"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_project_import_months_month"),
        CheckConstraint(
            "status IN ('pending', 'importing', 'success', 'error', 'skipped')",
            name="ck_project_import_months_status",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)  # 1-12

    status = Column(String(20), nullable=False, default=MonthStatus.PENDING, index=True)
    records_count = Column(Integer, nullable=False, default=0)  # daily metric rows ingested
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)  # completed attempts

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "year": self.year,
            "month": self.month,
            "status": self.status,
            "records_count": self.records_count or 0,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "retry_count": self.retry_count or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<MonthImportRecord {self.project_id} {self.year}-{self.month:02d} [{self.status}]>"
