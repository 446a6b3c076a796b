from collections import Counter
from typing import List

from civiclens.schemas.analytics import AnalyticsEvent, AnalyticsSummary, ModelPerformance
from civiclens.schemas.common import IssueCategory, IssueStatus
from civiclens.stores.base import AnalysisLog, EventLog, HotspotStore, ReportStore


class AnalyticsService:
    def __init__(self, reports: ReportStore, analysis_log: AnalysisLog, hotspots: HotspotStore, events: EventLog):
        self.reports = reports
        self.analysis_log = analysis_log
        self.hotspots = hotspots
        self.events = events

    async def summary(self) -> AnalyticsSummary:
        reports = await self.reports.list()
        analyses = await self.analysis_log.all()
        hotspots = await self.hotspots.list_active()

        categories = Counter(r.category for r in reports)
        statuses = Counter(r.status for r in reports)
        accuracies = [h.accuracy for h in hotspots if h.accuracy is not None]

        return AnalyticsSummary(
            total_issues=len(reports),
            resolved_issues=statuses[IssueStatus.resolved] + statuses[IssueStatus.closed],
            pending_issues=statuses[IssueStatus.reported] + statuses[IssueStatus.in_progress],
            spam_detected=sum(1 for r in reports if r.flagged_as_spam),
            duplicates_detected=sum(1 for r in reports if r.duplicate_of is not None),
            avg_processing_time_ms=(
                sum(a.processing_time_ms for a in analyses) / len(analyses) if analyses else 0.0
            ),
            category_distribution={c.value: categories[c] for c in IssueCategory},
            status_distribution={s.value: statuses[s] for s in IssueStatus},
            hotspot_accuracy=sum(accuracies) / len(accuracies) if accuracies else 0.0,
        )

    async def model_performance(self) -> ModelPerformance:
        reports = await self.reports.list()
        analyzed = [r for r in reports if r.analysis is not None]
        verified = [r for r in analyzed if r.is_verified is not None]
        total = max(len(reports), 1)

        return ModelPerformance(
            category_accuracy=sum(1 for r in verified if r.is_verified) / len(verified) if verified else 0.0,
            duplicate_detection_rate=sum(1 for r in reports if r.duplicate_of is not None) / total,
            spam_detection_rate=sum(1 for r in reports if r.flagged_as_spam) / total,
            avg_confidence=(
                sum(r.analysis.category_confidence for r in analyzed) / len(analyzed) if analyzed else 0.0
            ),
        )

    async def recent_events(self, limit: int = 50) -> List[AnalyticsEvent]:
        return await self.events.recent(limit)
