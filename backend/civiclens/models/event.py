from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from civiclens.core.database import Base

class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(32), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    data = Column(JSON, nullable=False, default=dict)
