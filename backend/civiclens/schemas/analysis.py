from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from civiclens.schemas.common import ImageQuality, IssueCategory, as_utc

MODEL_VERSION = "1.0.0"

class ExtractedLocation(BaseModel):
    address: str
    lat: float
    lng: float
    confidence: float = Field(..., ge=0, le=1)

class AnalysisResult(BaseModel):
    suggested_title: str
    enhanced_description: str

    predicted_category: IssueCategory
    category_confidence: float = Field(..., ge=0, le=1)

    is_duplicate: bool = False
    duplicate_report_id: Optional[int] = None
    duplicate_similarity: Optional[float] = Field(None, ge=0, le=1)

    is_spam: bool = False
    spam_score: float = Field(0.0, ge=0, le=1)
    spam_reasons: List[str] = Field(default_factory=list)

    extracted_location: Optional[ExtractedLocation] = None

    image_quality: ImageQuality = ImageQuality.poor
    image_quality_score: float = Field(0.0, ge=0, le=1)

    class Config:
        frozen = True

class AnalysisRecord(BaseModel):
    report_id: int
    result: AnalysisResult
    analyzed_at: datetime
    processing_time_ms: int
    model_version: str = MODEL_VERSION

    @field_validator("analyzed_at")
    @classmethod
    def ensure_utc(cls, value):
        return as_utc(value)

    class Config:
        from_attributes = True

class AnalyzeContentRequest(BaseModel):
    image_url: str = Field("", max_length=2048)
    description: str = Field(..., max_length=5000)
    location: Optional[str] = Field(None, max_length=500)

class AnalyzeContentResponse(BaseModel):
    success: bool
    analysis: Optional[AnalysisResult] = None
    error: Optional[str] = None
    processing_time_ms: int
