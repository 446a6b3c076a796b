"""In-memory stores. Used by the tests and for running the API without Postgres."""
import asyncio
import itertools
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from civiclens.core.events import ChangeFeed
from civiclens.core.exceptions import NotFoundError
from civiclens.schemas.analysis import AnalysisRecord, AnalysisResult
from civiclens.schemas.analytics import AnalyticsEvent, AnalyticsEventType
from civiclens.schemas.common import IssueCategory, IssueStatus, utcnow
from civiclens.schemas.hotspot import HotspotPrediction, HotspotRecord
from civiclens.schemas.report import Report, ReportCreate
from civiclens.stores.base import (
    RISK_ORDER,
    AnalysisLog,
    BlobStore,
    EventLog,
    HotspotStore,
    ReportStore,
    blob_path,
    hotspot_accuracy,
    validate_image,
)


class MemoryReportStore(ReportStore):
    def __init__(self, feed: Optional[ChangeFeed] = None, clock=utcnow):
        super().__init__(feed)
        self.clock = clock
        self._reports: Dict[int, Report] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def create(self, report: ReportCreate) -> int:
        async with self._lock:
            report_id = next(self._ids)
            self._reports[report_id] = Report(id=report_id, created_at=self.clock(), **report.model_dump())
        await self.feed.publish("created", report_id)
        return report_id

    async def get(self, report_id: int) -> Optional[Report]:
        return self._reports.get(report_id)

    async def list(
        self,
        category: Optional[IssueCategory] = None,
        status: Optional[IssueStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Report]:
        reports = list(self._reports.values())
        if category:
            reports = [r for r in reports if r.category == category]
        if status:
            reports = [r for r in reports if r.status == status]
        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports[:limit] if limit else reports

    async def update(self, report_id: int, changes: Dict[str, Any]) -> Report:
        async with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                raise NotFoundError("Report", report_id)
            data = current.model_dump()
            data.update(changes, updated_at=self.clock())
            updated = Report.model_validate(data)
            self._reports[report_id] = updated
        await self.feed.publish("updated", report_id, fields=sorted(changes))
        return updated

    async def delete(self, report_id: int) -> None:
        async with self._lock:
            if self._reports.pop(report_id, None) is None:
                raise NotFoundError("Report", report_id)
        await self.feed.publish("deleted", report_id)

    async def upvote(self, report_id: int) -> int:
        async with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                raise NotFoundError("Report", report_id)
            upvotes = current.upvotes + 1
            self._reports[report_id] = current.model_copy(update={"upvotes": upvotes})
        await self.feed.publish("upvoted", report_id, upvotes=upvotes)
        return upvotes


class MemoryAnalysisLog(AnalysisLog):
    def __init__(self, clock=utcnow):
        self.clock = clock
        self._records: List[AnalysisRecord] = []

    async def append(self, report_id: int, result: AnalysisResult, processing_time_ms: int) -> AnalysisRecord:
        record = AnalysisRecord(
            report_id=report_id,
            result=result,
            analyzed_at=self.clock(),
            processing_time_ms=processing_time_ms,
        )
        self._records.append(record)
        return record

    async def history(self, report_id: int) -> List[AnalysisRecord]:
        records = [r for r in self._records if r.report_id == report_id]
        return sorted(records, key=lambda r: r.analyzed_at, reverse=True)

    async def all(self) -> List[AnalysisRecord]:
        return list(self._records)


class MemoryHotspotStore(HotspotStore):
    def __init__(self, clock=utcnow):
        self.clock = clock
        self._hotspots: Dict[int, HotspotRecord] = {}
        self._ids = itertools.count(1)

    async def add(self, prediction: HotspotPrediction) -> HotspotRecord:
        now = self.clock()
        record = HotspotRecord(id=next(self._ids), created_at=now, updated_at=now, **prediction.model_dump())
        self._hotspots[record.id] = record
        return record

    async def get(self, hotspot_id: int) -> Optional[HotspotRecord]:
        return self._hotspots.get(hotspot_id)

    async def list_active(self) -> List[HotspotRecord]:
        active = [h for h in self._hotspots.values() if h.is_active]
        return sorted(active, key=lambda h: RISK_ORDER[h.risk_level.value], reverse=True)

    async def update_accuracy(self, hotspot_id: int, actual_issues_count: int) -> HotspotRecord:
        current = self._hotspots.get(hotspot_id)
        if current is None:
            raise NotFoundError("Hotspot", hotspot_id)
        updated = current.model_copy(update={
            "actual_issues_count": actual_issues_count,
            "accuracy": hotspot_accuracy(current.probability, actual_issues_count),
            "updated_at": self.clock(),
        })
        self._hotspots[hotspot_id] = updated
        return updated

    async def deactivate_expired(self, now: datetime, max_age_days: int = 30) -> int:
        cutoff = now - timedelta(days=max_age_days)
        expired = [h for h in self._hotspots.values() if h.is_active and h.created_at < cutoff]
        for hotspot in expired:
            self._hotspots[hotspot.id] = hotspot.model_copy(update={"is_active": False, "updated_at": now})
        return len(expired)


class MemoryEventLog(EventLog):
    def __init__(self, clock=utcnow):
        self.clock = clock
        self.events: List[AnalyticsEvent] = []

    async def log(self, event_type: AnalyticsEventType, data: Dict[str, Any]) -> None:
        self.events.append(AnalyticsEvent(type=event_type, timestamp=self.clock(), data=data))

    async def recent(self, limit: int = 50) -> List[AnalyticsEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]


class MemoryBlobStore(BlobStore):
    def __init__(self, base_url: str = "memory://civiclens"):
        self.base_url = base_url
        self.objects: Dict[str, bytes] = {}

    async def put(self, report_id: int, index: int, data: bytes, content_type: str, filename: str = "") -> str:
        validate_image(data, content_type)
        path = blob_path(report_id, index, int(time.time() * 1000), filename, content_type)
        self.objects[path] = data
        return f"{self.base_url}/{path}"

    async def list(self, report_id: int) -> List[str]:
        prefix = f"reports/{report_id}/"
        return [f"{self.base_url}/{path}" for path in sorted(self.objects) if path.startswith(prefix)]

    async def delete_all(self, report_id: int) -> int:
        prefix = f"reports/{report_id}/"
        paths = [path for path in self.objects if path.startswith(prefix)]
        for path in paths:
            del self.objects[path]
        return len(paths)
