from datetime import datetime, timezone
from enum import Enum
from typing import Optional

class IssueCategory(str, Enum):
    roads = "roads"
    water = "water"
    electricity = "electricity"
    sanitation = "sanitation"
    public_spaces = "public-spaces"
    transportation = "transportation"
    other = "other"

class IssueStatus(str, Enum):
    reported = "reported"
    in_progress = "in-progress"
    resolved = "resolved"
    closed = "closed"

class IssuePriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"

class ModerationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"

class ImageQuality(str, Enum):
    poor = "poor"
    fair = "fair"
    good = "good"
    excellent = "excellent"

class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
