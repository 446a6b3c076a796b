from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, JSON, Index
from sqlalchemy.sql import func
from civiclens.core.database import Base

class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, default="")
    description = Column(Text, nullable=False)
    category = Column(String(32), nullable=False, index=True)  # roads, water, ..., other
    status = Column(String(32), nullable=False, default="reported", index=True)
    priority = Column(String(16), nullable=False, default="medium")
    location = Column(String(500), nullable=False, default="")
    location_data = Column(JSON, nullable=True)  # lat, lng, address, city, district, state
    images = Column(JSON, nullable=False, default=list)
    duration = Column(String(100), nullable=False, default="")
    reported_by = Column(String(128), nullable=False, default="anonymous")
    upvotes = Column(Integer, nullable=False, default=0)

    # Analysis
    analysis = Column(JSON, nullable=True)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)
    is_verified = Column(Boolean, nullable=True)
    duplicate_of = Column(Integer, ForeignKey("reports.id", ondelete="SET NULL"), nullable=True)
    flagged_as_spam = Column(Boolean, nullable=False, default=False)
    moderation_status = Column(String(16), nullable=False, default="pending")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_report_category_status", "category", "status"),
    )
