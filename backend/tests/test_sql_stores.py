from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from civiclens.analysis.agent import default_result
from civiclens.core.database import init_models
from civiclens.core.events import ChangeFeed
from civiclens.core.exceptions import NotFoundError
from civiclens.schemas.analytics import AnalyticsEventType
from civiclens.schemas.common import IssueCategory, IssuePriority, IssueStatus, RiskLevel, utcnow
from civiclens.schemas.hotspot import HotspotPrediction
from civiclens.schemas.report import LocationData, ReportCreate
from civiclens.stores.sql import SqlAnalysisLog, SqlEventLog, SqlHotspotStore, SqlReportStore


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


def prediction(location="Kothrud", lat=18.5, lng=73.8, risk=RiskLevel.medium):
    return HotspotPrediction(
        location=location,
        lat=lat,
        lng=lng,
        predicted_category=IssueCategory.water,
        risk_level=risk,
        probability=0.7,
        reasoning="Based on 2 historical issues in this area, with 0 reported recently.",
        predicted_timeframe="Next month",
    )


async def test_report_lifecycle(session_factory):
    changes = []
    feed = ChangeFeed()
    feed.subscribe(changes.append)
    store = SqlReportStore(session_factory, feed)

    report_id = await store.create(ReportCreate(
        description="Pothole near market",
        category=IssueCategory.roads,
        location="Market Road, Baramati",
        location_data=LocationData(lat=18.15, lng=74.57, address="Market Road"),
        images=["https://x/1.jpg"],
    ))
    report = await store.get(report_id)
    assert report.category == IssueCategory.roads
    assert report.status == IssueStatus.reported
    assert report.priority == IssuePriority.medium
    assert report.location_data.lat == 18.15
    assert report.images == ["https://x/1.jpg"]
    assert report.created_at.tzinfo is not None

    result = default_result("Pothole near market")
    updated = await store.update(report_id, {"analysis": result, "priority": IssuePriority.high, "flagged_as_spam": True})
    assert updated.analysis == result
    assert updated.priority == IssuePriority.high
    assert updated.flagged_as_spam
    assert updated.updated_at is not None

    assert await store.upvote(report_id) == 1
    assert await store.upvote(report_id) == 2

    [found] = await store.search("MARKET")
    assert found.id == report_id

    await store.delete(report_id)
    assert await store.get(report_id) is None
    assert [c["type"] for c in changes] == ["created", "updated", "upvoted", "upvoted", "deleted"]


async def test_missing_reports(session_factory):
    store = SqlReportStore(session_factory)
    with pytest.raises(NotFoundError):
        await store.update(5, {"status": IssueStatus.closed})
    with pytest.raises(NotFoundError):
        await store.upvote(5)
    with pytest.raises(NotFoundError):
        await store.delete(5)


async def test_list_filters(session_factory):
    store = SqlReportStore(session_factory)
    first = await store.create(ReportCreate(description="Leak", category=IssueCategory.water))
    second = await store.create(ReportCreate(description="Pothole", category=IssueCategory.roads))
    await store.update(second, {"status": IssueStatus.resolved})

    assert [r.id for r in await store.list()] == [second, first]
    assert [r.id for r in await store.list(category=IssueCategory.water)] == [first]
    assert [r.id for r in await store.list(status=IssueStatus.resolved)] == [second]
    assert len(await store.list(limit=1)) == 1


async def test_analysis_log(session_factory):
    log = SqlAnalysisLog(session_factory)
    result = default_result("Leak")
    await log.append(1, result, 120)
    await log.append(1, result, 80)
    await log.append(2, result, 50)

    history = await log.history(1)
    assert [r.processing_time_ms for r in history] == [80, 120]
    assert history[0].result == result
    assert len(await log.all()) == 3


async def test_hotspots(session_factory):
    store = SqlHotspotStore(session_factory)
    medium = await store.add(prediction())
    critical = await store.add(prediction("MG Road", 18.52, 73.85, RiskLevel.critical))

    assert [h.id for h in await store.list_active()] == [critical.id, medium.id]

    updated = await store.update_accuracy(medium.id, 14)
    assert updated.accuracy == 1.0
    assert (await store.get(medium.id)).actual_issues_count == 14

    assert await store.deactivate_expired(utcnow(), 30) == 0
    assert await store.deactivate_expired(utcnow() + timedelta(days=31), 30) == 2
    assert await store.list_active() == []


async def test_event_log(session_factory):
    events = SqlEventLog(session_factory)
    await events.log(AnalyticsEventType.issue_created, {"report_id": 1})
    await events.log(AnalyticsEventType.ml_analysis, {"report_id": 1, "processing_time_ms": 12})

    recent = await events.recent(10)
    assert [e.type for e in recent] == [AnalyticsEventType.ml_analysis, AnalyticsEventType.issue_created]
    assert recent[0].data["processing_time_ms"] == 12
