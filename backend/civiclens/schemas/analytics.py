from datetime import datetime
from typing import Any, Dict
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from civiclens.schemas.common import as_utc

class AnalyticsEventType(str, Enum):
    issue_created = "issue_created"
    issue_resolved = "issue_resolved"
    ml_analysis = "ml_analysis"
    duplicate_detected = "duplicate_detected"
    spam_detected = "spam_detected"
    hotspot_predicted = "hotspot_predicted"

class AnalyticsEvent(BaseModel):
    type: AnalyticsEventType
    timestamp: datetime
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value):
        return as_utc(value)

    class Config:
        from_attributes = True

class AnalyticsSummary(BaseModel):
    total_issues: int
    resolved_issues: int
    pending_issues: int
    spam_detected: int
    duplicates_detected: int
    avg_processing_time_ms: float
    category_distribution: Dict[str, int]
    status_distribution: Dict[str, int]
    hotspot_accuracy: float

class ModelPerformance(BaseModel):
    category_accuracy: float
    duplicate_detection_rate: float
    spam_detection_rate: float
    avg_confidence: float
