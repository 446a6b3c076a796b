from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from civiclens.schemas.common import IssueCategory, RiskLevel, as_utc

class HotspotPrediction(BaseModel):
    location: str
    lat: float
    lng: float
    predicted_category: IssueCategory
    risk_level: RiskLevel
    probability: float = Field(..., ge=0, le=1)
    reasoning: str
    predicted_timeframe: str

class HotspotRecord(HotspotPrediction):
    id: int
    created_at: datetime
    updated_at: datetime
    is_active: bool = True
    actual_issues_count: int = 0
    accuracy: Optional[float] = Field(None, ge=0, le=1)

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, value):
        return as_utc(value)

    class Config:
        from_attributes = True

class AccuracyUpdate(BaseModel):
    actual_issues_count: int = Field(..., ge=0)

class ExpiredHotspots(BaseModel):
    deactivated: int
