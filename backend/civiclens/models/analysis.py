from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from civiclens.core.database import Base

class AnalysisRecord(Base):
    __tablename__ = "ml_analyses"

    # Append-only; rows outlive the report they describe
    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, nullable=False, index=True)
    result = Column(JSON, nullable=False)
    analyzed_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    processing_time_ms = Column(Integer, nullable=False, default=0)
    model_version = Column(String(16), nullable=False)
