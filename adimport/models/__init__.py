"""Database models for the month import service"""

from adimport.models.project import Project
from adimport.models.month_import import MonthImportRecord, MonthStatus
from adimport.models.sync_log import SyncLog
