from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Text
from sqlalchemy.sql import func
from civiclens.core.database import Base

class Hotspot(Base):
    __tablename__ = "hotspots"

    id = Column(Integer, primary_key=True, index=True)
    location = Column(String(500), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    predicted_category = Column(String(32), nullable=False)
    risk_level = Column(String(16), nullable=False)  # low, medium, high, critical
    probability = Column(Float, nullable=False)
    reasoning = Column(Text)
    predicted_timeframe = Column(String(64))
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    actual_issues_count = Column(Integer, nullable=False, default=0)
    accuracy = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
