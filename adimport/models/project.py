"""
Project model.

Projects are owned by the dashboard; the import service only reads the
ad account each project syncs from.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime

from adimport.models.base import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    ad_account_id = Column(String, nullable=True)  # act_XXXXXXXX; missing = not configured
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Project {self.name} [{self.ad_account_id}]>"
