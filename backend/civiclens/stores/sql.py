"""SQLAlchemy (async) implementations of the document stores."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from civiclens.core.events import ChangeFeed
from civiclens.core.exceptions import NotFoundError
from civiclens.core.retry import retrying
from civiclens.models.analysis import AnalysisRecord as AnalysisRecordRow
from civiclens.models.event import AnalyticsEvent as AnalyticsEventRow
from civiclens.models.hotspot import Hotspot as HotspotRow
from civiclens.models.report import Report as ReportRow
from civiclens.schemas.analysis import MODEL_VERSION, AnalysisRecord, AnalysisResult
from civiclens.schemas.analytics import AnalyticsEvent, AnalyticsEventType
from civiclens.schemas.common import IssueCategory, IssueStatus, utcnow
from civiclens.schemas.hotspot import HotspotPrediction, HotspotRecord
from civiclens.schemas.report import Report, ReportCreate
from civiclens.stores.base import (
    RISK_ORDER,
    AnalysisLog,
    EventLog,
    HotspotStore,
    ReportStore,
    hotspot_accuracy,
)


def column_value(value):
    """Convert schema values into something a JSON or String column accepts."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [column_value(v) for v in value]
    return value


class SqlStore:
    def __init__(self, session_factory: async_sessionmaker, retries: int = 3, backoff: float = 0.5):
        self.session_factory = session_factory
        self.retries = retries
        self.backoff = backoff


class SqlReportStore(SqlStore, ReportStore):
    def __init__(self, session_factory: async_sessionmaker, feed: Optional[ChangeFeed] = None, **kwargs):
        SqlStore.__init__(self, session_factory, **kwargs)
        ReportStore.__init__(self, feed)

    @retrying
    async def _insert(self, report: ReportCreate) -> int:
        async with self.session_factory() as session:
            row = ReportRow(
                **{k: column_value(v) for k, v in report.model_dump().items()},
                created_at=utcnow(),
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row.id

    async def create(self, report: ReportCreate) -> int:
        report_id = await self._insert(report)
        await self.feed.publish("created", report_id)
        return report_id

    @retrying
    async def get(self, report_id: int) -> Optional[Report]:
        async with self.session_factory() as session:
            row = await session.get(ReportRow, report_id)
            return Report.model_validate(row) if row else None

    @retrying
    async def list(
        self,
        category: Optional[IssueCategory] = None,
        status: Optional[IssueStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Report]:
        query = select(ReportRow).order_by(ReportRow.created_at.desc(), ReportRow.id.desc())
        if category:
            query = query.where(ReportRow.category == category.value)
        if status:
            query = query.where(ReportRow.status == status.value)
        if limit:
            query = query.limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [Report.model_validate(row) for row in result.scalars().all()]

    @retrying
    async def _apply(self, report_id: int, changes: Dict[str, Any]) -> Report:
        async with self.session_factory() as session:
            row = await session.get(ReportRow, report_id)
            if row is None:
                raise NotFoundError("Report", report_id)
            for field, value in changes.items():
                setattr(row, field, column_value(value))
            row.updated_at = utcnow()
            await session.commit()
            await session.refresh(row)
            return Report.model_validate(row)

    async def update(self, report_id: int, changes: Dict[str, Any]) -> Report:
        report = await self._apply(report_id, changes)
        await self.feed.publish("updated", report_id, fields=sorted(changes))
        return report

    @retrying
    async def _remove(self, report_id: int) -> None:
        async with self.session_factory() as session:
            result = await session.execute(delete(ReportRow).where(ReportRow.id == report_id))
            if result.rowcount == 0:
                raise NotFoundError("Report", report_id)
            await session.commit()

    async def delete(self, report_id: int) -> None:
        await self._remove(report_id)
        await self.feed.publish("deleted", report_id)

    @retrying
    async def _increment(self, report_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                update(ReportRow)
                .where(ReportRow.id == report_id)
                .values(upvotes=ReportRow.upvotes + 1)
                .returning(ReportRow.upvotes)
            )
            upvotes = result.scalar_one_or_none()
            if upvotes is None:
                raise NotFoundError("Report", report_id)
            await session.commit()
            return upvotes

    async def upvote(self, report_id: int) -> int:
        upvotes = await self._increment(report_id)
        await self.feed.publish("upvoted", report_id, upvotes=upvotes)
        return upvotes

    @retrying
    async def search(self, term: str) -> List[Report]:
        pattern = f"%{term.lower()}%"
        query = (
            select(ReportRow)
            .where(
                ReportRow.title.ilike(pattern)
                | ReportRow.description.ilike(pattern)
                | ReportRow.location.ilike(pattern)
            )
            .order_by(ReportRow.created_at.desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [Report.model_validate(row) for row in result.scalars().all()]


class SqlAnalysisLog(SqlStore, AnalysisLog):
    @retrying
    async def append(self, report_id: int, result: AnalysisResult, processing_time_ms: int) -> AnalysisRecord:
        async with self.session_factory() as session:
            row = AnalysisRecordRow(
                report_id=report_id,
                result=result.model_dump(mode="json"),
                analyzed_at=utcnow(),
                processing_time_ms=processing_time_ms,
                model_version=MODEL_VERSION,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return AnalysisRecord.model_validate(row)

    @retrying
    async def history(self, report_id: int) -> List[AnalysisRecord]:
        query = (
            select(AnalysisRecordRow)
            .where(AnalysisRecordRow.report_id == report_id)
            .order_by(AnalysisRecordRow.analyzed_at.desc(), AnalysisRecordRow.id.desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [AnalysisRecord.model_validate(row) for row in result.scalars().all()]

    @retrying
    async def all(self) -> List[AnalysisRecord]:
        async with self.session_factory() as session:
            result = await session.execute(select(AnalysisRecordRow))
            return [AnalysisRecord.model_validate(row) for row in result.scalars().all()]


class SqlHotspotStore(SqlStore, HotspotStore):
    @retrying
    async def add(self, prediction: HotspotPrediction) -> HotspotRecord:
        now = utcnow()
        async with self.session_factory() as session:
            row = HotspotRow(
                **{k: column_value(v) for k, v in prediction.model_dump().items()},
                is_active=True,
                actual_issues_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return HotspotRecord.model_validate(row)

    @retrying
    async def get(self, hotspot_id: int) -> Optional[HotspotRecord]:
        async with self.session_factory() as session:
            row = await session.get(HotspotRow, hotspot_id)
            return HotspotRecord.model_validate(row) if row else None

    @retrying
    async def list_active(self) -> List[HotspotRecord]:
        async with self.session_factory() as session:
            result = await session.execute(select(HotspotRow).where(HotspotRow.is_active.is_(True)))
            hotspots = [HotspotRecord.model_validate(row) for row in result.scalars().all()]
        return sorted(hotspots, key=lambda h: RISK_ORDER[h.risk_level.value], reverse=True)

    @retrying
    async def update_accuracy(self, hotspot_id: int, actual_issues_count: int) -> HotspotRecord:
        async with self.session_factory() as session:
            row = await session.get(HotspotRow, hotspot_id)
            if row is None:
                raise NotFoundError("Hotspot", hotspot_id)
            row.actual_issues_count = actual_issues_count
            row.accuracy = hotspot_accuracy(row.probability, actual_issues_count)
            row.updated_at = utcnow()
            await session.commit()
            await session.refresh(row)
            return HotspotRecord.model_validate(row)

    @retrying
    async def deactivate_expired(self, now: datetime, max_age_days: int = 30) -> int:
        cutoff = now - timedelta(days=max_age_days)
        async with self.session_factory() as session:
            result = await session.execute(
                update(HotspotRow)
                .where(HotspotRow.is_active.is_(True), HotspotRow.created_at < cutoff)
                .values(is_active=False, updated_at=now)
            )
            await session.commit()
            return result.rowcount


class SqlEventLog(SqlStore, EventLog):
    @retrying
    async def log(self, event_type: AnalyticsEventType, data: Dict[str, Any]) -> None:
        async with self.session_factory() as session:
            session.add(AnalyticsEventRow(type=event_type.value, timestamp=utcnow(), data=data))
            await session.commit()

    @retrying
    async def recent(self, limit: int = 50) -> List[AnalyticsEvent]:
        query = select(AnalyticsEventRow).order_by(AnalyticsEventRow.timestamp.desc(), AnalyticsEventRow.id.desc()).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [AnalyticsEvent.model_validate(row) for row in result.scalars().all()]
