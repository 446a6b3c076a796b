from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from civiclens.schemas.analysis import AnalysisResult
from civiclens.schemas.common import IssueCategory, IssuePriority, IssueStatus, ModerationStatus, as_utc

class LocationData(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: str = ""
    city: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None

class ReportCreate(BaseModel):
    title: str = Field("", max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: IssueCategory = IssueCategory.other
    location: str = Field("", max_length=500)
    location_data: Optional[LocationData] = None
    images: List[str] = Field(default_factory=list, max_length=10)
    duration: str = Field("", max_length=100)
    reported_by: str = Field("anonymous", max_length=128)

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description must not be blank")
        return value

class Report(BaseModel):
    id: int
    title: str
    description: str
    category: IssueCategory
    status: IssueStatus = IssueStatus.reported
    priority: IssuePriority = IssuePriority.medium
    location: str = ""
    location_data: Optional[LocationData] = None
    images: List[str] = Field(default_factory=list)
    duration: str = ""
    reported_by: str = "anonymous"
    created_at: datetime
    updated_at: Optional[datetime] = None
    upvotes: int = 0

    analysis: Optional[AnalysisResult] = None
    analyzed_at: Optional[datetime] = None
    is_verified: Optional[bool] = None
    duplicate_of: Optional[int] = None
    flagged_as_spam: bool = False
    moderation_status: ModerationStatus = ModerationStatus.pending

    @field_validator("created_at", "updated_at", "analyzed_at")
    @classmethod
    def ensure_utc(cls, value):
        return as_utc(value)

    class Config:
        from_attributes = True

class StatusUpdate(BaseModel):
    status: IssueStatus

class PriorityUpdate(BaseModel):
    priority: IssuePriority

class ModerationUpdate(BaseModel):
    moderation_status: ModerationStatus

class VerificationUpdate(BaseModel):
    is_correct: bool

class CreateReportResponse(BaseModel):
    report_id: int
    analysis: Optional[AnalysisResult] = None

class UpvoteResponse(BaseModel):
    report_id: int
    upvotes: int

class FlaggedReports(BaseModel):
    duplicates: List[Report]
    spam: List[Report]

class UploadImagesResponse(BaseModel):
    success: bool
    uploaded_urls: List[str]
    errors: List[str]
