import random

import pytest

from civiclens.analysis.agent import AnalysisConfig, AnalysisOrchestrator
from civiclens.analysis.hotspots import HotspotClusterer
from civiclens.core.events import ChangeFeed
from civiclens.schemas.common import IssueCategory, utcnow
from civiclens.schemas.report import Report, ReportCreate
from civiclens.services.analytics import AnalyticsService
from civiclens.services.hotspots import HotspotService
from civiclens.services.reports import ReportService
from civiclens.stores.memory import (
    MemoryAnalysisLog,
    MemoryBlobStore,
    MemoryEventLog,
    MemoryHotspotStore,
    MemoryReportStore,
)


def make_report(report_id=1, description="", location="", title="", category=IssueCategory.other, created_at=None, **kwargs):
    return Report(
        id=report_id,
        title=title,
        description=description,
        category=category,
        location=location,
        created_at=created_at or utcnow(),
        **kwargs,
    )


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def report_store(feed):
    return MemoryReportStore(feed)


@pytest.fixture
def analysis_log():
    return MemoryAnalysisLog()


@pytest.fixture
def hotspot_store():
    return MemoryHotspotStore()


@pytest.fixture
def event_log():
    return MemoryEventLog()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def config():
    return AnalysisConfig()


@pytest.fixture
def orchestrator(report_store, analysis_log, event_log, config, rng):
    return AnalysisOrchestrator(report_store, analysis_log, event_log, config=config, rng=rng)


@pytest.fixture
def clusterer(report_store, hotspot_store, event_log):
    return HotspotClusterer(report_store, hotspot_store, event_log)


@pytest.fixture
def report_service(report_store, analysis_log, event_log, blob_store, orchestrator):
    return ReportService(report_store, analysis_log, event_log, blob_store, orchestrator)


@pytest.fixture
def hotspot_service(hotspot_store, clusterer):
    return HotspotService(hotspot_store, clusterer)


@pytest.fixture
def analytics_service(report_store, analysis_log, hotspot_store, event_log):
    return AnalyticsService(report_store, analysis_log, hotspot_store, event_log)


@pytest.fixture
def submit(report_store):
    """Create a report straight in the store and return its id."""

    async def _submit(description, location="", title="", **kwargs):
        return await report_store.create(
            ReportCreate(description=description, location=location, title=title, **kwargs)
        )

    return _submit
