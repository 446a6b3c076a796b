"""Storage interfaces the report service and the analysis pipeline depend on.

Two implementations ship with the package: SQLAlchemy/MinIO backed stores
(``civiclens.stores.sql``, ``civiclens.stores.blob``) and in-memory ones
(``civiclens.stores.memory``) used for tests and local runs.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from civiclens.core.events import ChangeFeed, Subscriber
from civiclens.core.exceptions import InvalidContentError
from civiclens.schemas.analysis import AnalysisRecord, AnalysisResult
from civiclens.schemas.analytics import AnalyticsEvent, AnalyticsEventType
from civiclens.schemas.common import IssueCategory, IssueStatus
from civiclens.schemas.hotspot import HotspotPrediction, HotspotRecord
from civiclens.schemas.report import Report, ReportCreate

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024

RISK_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}


class ReportStore(ABC):
    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed or ChangeFeed()

    @abstractmethod
    async def create(self, report: ReportCreate) -> int:
        """Persist a new report and return its id."""

    @abstractmethod
    async def get(self, report_id: int) -> Optional[Report]:
        ...

    @abstractmethod
    async def list(
        self,
        category: Optional[IssueCategory] = None,
        status: Optional[IssueStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Report]:
        """Reports matching the filters, newest first."""

    @abstractmethod
    async def update(self, report_id: int, changes: Dict[str, Any]) -> Report:
        """Apply a partial update. Raises NotFoundError for unknown ids."""

    @abstractmethod
    async def delete(self, report_id: int) -> None:
        ...

    @abstractmethod
    async def upvote(self, report_id: int) -> int:
        """Atomically add one upvote and return the new count."""

    async def search(self, term: str) -> List[Report]:
        term = term.lower()
        return [
            r for r in await self.list()
            if term in r.title.lower() or term in r.description.lower() or term in r.location.lower()
        ]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.feed.subscribe(callback)


class AnalysisLog(ABC):
    @abstractmethod
    async def append(self, report_id: int, result: AnalysisResult, processing_time_ms: int) -> AnalysisRecord:
        ...

    @abstractmethod
    async def history(self, report_id: int) -> List[AnalysisRecord]:
        """All analyses of one report, newest first."""

    @abstractmethod
    async def all(self) -> List[AnalysisRecord]:
        ...


class HotspotStore(ABC):
    @abstractmethod
    async def add(self, prediction: HotspotPrediction) -> HotspotRecord:
        ...

    @abstractmethod
    async def get(self, hotspot_id: int) -> Optional[HotspotRecord]:
        ...

    @abstractmethod
    async def list_active(self) -> List[HotspotRecord]:
        """Active hotspots, highest risk first."""

    @abstractmethod
    async def update_accuracy(self, hotspot_id: int, actual_issues_count: int) -> HotspotRecord:
        ...

    @abstractmethod
    async def deactivate_expired(self, now: datetime, max_age_days: int = 30) -> int:
        """Deactivate hotspots older than ``max_age_days``; returns how many."""


class EventLog(ABC):
    @abstractmethod
    async def log(self, event_type: AnalyticsEventType, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def recent(self, limit: int = 50) -> List[AnalyticsEvent]:
        ...


class BlobStore(ABC):
    @abstractmethod
    async def put(self, report_id: int, index: int, data: bytes, content_type: str, filename: str = "") -> str:
        """Store one image and return a publicly resolvable URL."""

    @abstractmethod
    async def list(self, report_id: int) -> List[str]:
        ...

    @abstractmethod
    async def delete_all(self, report_id: int) -> int:
        ...


def hotspot_accuracy(probability: float, actual_issues_count: int) -> float:
    if probability <= 0:
        return 0.0
    return min(actual_issues_count / (probability * 10), 1.0)


def blob_path(report_id: int, index: int, timestamp_ms: int, filename: str, content_type: str) -> str:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else content_type.split("/")[-1]
    return f"reports/{report_id}/{timestamp_ms}_{index}.{extension or 'jpg'}"


def validate_image(data: bytes, content_type: str) -> None:
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidContentError("Invalid file type. Allowed: JPEG, PNG, GIF, WebP")
    if not data:
        raise InvalidContentError("Empty file")
    if len(data) > MAX_IMAGE_BYTES:
        raise InvalidContentError("File too large. Maximum size is 10MB")
