import asyncio
import logging
import time
from typing import List, Optional, Sequence, Set, Tuple

from civiclens.analysis.agent import AnalysisOrchestrator
from civiclens.core.exceptions import CivicLensError, InvalidContentError, NotFoundError
from civiclens.schemas.analysis import AnalysisRecord, AnalysisResult, AnalyzeContentRequest, AnalyzeContentResponse
from civiclens.schemas.analytics import AnalyticsEventType
from civiclens.schemas.common import IssueCategory, IssuePriority, IssueStatus, ModerationStatus
from civiclens.schemas.report import (
    CreateReportResponse,
    FlaggedReports,
    Report,
    ReportCreate,
    UploadImagesResponse,
    UpvoteResponse,
)
from civiclens.stores.base import AnalysisLog, BlobStore, EventLog, ReportStore

logger = logging.getLogger(__name__)

MAX_IMAGES_PER_REPORT = 10
PRIORITY_CONFIDENCE = 0.8
URGENT_CATEGORIES = (IssueCategory.water, IssueCategory.electricity)

# (filename, content type, bytes)
UploadedFile = Tuple[str, str, bytes]


def calculate_priority(analysis: AnalysisResult) -> IssuePriority:
    if analysis.is_spam or analysis.is_duplicate:
        return IssuePriority.low
    if analysis.predicted_category in URGENT_CATEGORIES and analysis.category_confidence > PRIORITY_CONFIDENCE:
        return IssuePriority.high
    return IssuePriority.medium


class ReportService:
    """Report lifecycle: creation with analysis, browsing, updates, images."""

    def __init__(
        self,
        reports: ReportStore,
        analysis_log: AnalysisLog,
        events: EventLog,
        blobs: BlobStore,
        orchestrator: AnalysisOrchestrator,
    ):
        self.reports = reports
        self.analysis_log = analysis_log
        self.events = events
        self.blobs = blobs
        self.orchestrator = orchestrator
        self._pending: Set[asyncio.Task] = set()

    async def create(self, data: ReportCreate, wait_for_analysis: bool = False) -> CreateReportResponse:
        report_id = await self.reports.create(data)
        try:
            await self.events.log(AnalyticsEventType.issue_created, {
                "report_id": report_id,
                "category": data.category.value,
                "location": data.location,
            })
        except CivicLensError:
            logger.exception("Could not log creation of report %d", report_id)
        logger.info("Created report %d (%s)", report_id, data.category.value)

        if wait_for_analysis:
            analysis = await self.analyze_report(report_id, data)
            return CreateReportResponse(report_id=report_id, analysis=analysis)

        task = asyncio.create_task(self.analyze_report(report_id, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return CreateReportResponse(report_id=report_id)

    async def analyze_report(self, report_id: int, data: ReportCreate) -> AnalysisResult:
        analysis = await self.orchestrator.analyze(
            data.description,
            image_url=data.images[0] if data.images else "",
            location=data.location or None,
            report_id=report_id,
            title=data.title,
        )
        if analysis.category_confidence > PRIORITY_CONFIDENCE:
            try:
                await self.reports.update(report_id, {"priority": calculate_priority(analysis)})
            except CivicLensError:
                logger.exception("Could not apply suggested priority to report %d", report_id)
        return analysis

    async def wait_for_pending(self):
        """Wait until every background analysis started by ``create`` is done."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def get(self, report_id: int) -> Report:
        report = await self.reports.get(report_id)
        if report is None:
            raise NotFoundError("Report", report_id)
        return report

    async def list(
        self,
        category: Optional[IssueCategory] = None,
        status: Optional[IssueStatus] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Report]:
        if not search:
            return await self.reports.list(category=category, status=status, limit=limit)

        reports = await self.reports.search(search)
        if category:
            reports = [r for r in reports if r.category == category]
        if status:
            reports = [r for r in reports if r.status == status]
        return reports[:limit] if limit else reports

    async def update_status(self, report_id: int, status: IssueStatus) -> Report:
        report = await self.reports.update(report_id, {"status": status})
        if status == IssueStatus.resolved:
            await self.events.log(AnalyticsEventType.issue_resolved, {
                "report_id": report_id,
                "category": report.category.value,
            })
        return report

    async def update_priority(self, report_id: int, priority: IssuePriority) -> Report:
        return await self.reports.update(report_id, {"priority": priority})

    async def moderate(self, report_id: int, moderation_status: ModerationStatus) -> Report:
        return await self.reports.update(report_id, {"moderation_status": moderation_status})

    async def verify(self, report_id: int, is_correct: bool) -> Report:
        """Record whether the predicted category was right."""
        return await self.reports.update(report_id, {"is_verified": is_correct})

    async def upvote(self, report_id: int) -> UpvoteResponse:
        upvotes = await self.reports.upvote(report_id)
        return UpvoteResponse(report_id=report_id, upvotes=upvotes)

    async def delete(self, report_id: int) -> None:
        await self.get(report_id)
        removed = await self.blobs.delete_all(report_id)
        await self.reports.delete(report_id)
        logger.info("Deleted report %d and %d images", report_id, removed)

    async def flagged(self) -> FlaggedReports:
        reports = await self.reports.list()
        return FlaggedReports(
            duplicates=[r for r in reports if r.duplicate_of is not None],
            spam=[r for r in reports if r.flagged_as_spam],
        )

    async def analyses(self, report_id: int) -> List[AnalysisRecord]:
        await self.get(report_id)
        return await self.analysis_log.history(report_id)

    async def analyze_content(self, request: AnalyzeContentRequest) -> AnalyzeContentResponse:
        started = time.perf_counter()
        analysis = await self.orchestrator.analyze(
            request.description,
            image_url=request.image_url,
            location=request.location,
        )
        return AnalyzeContentResponse(
            success=True,
            analysis=analysis,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
        )

    async def upload_images(self, report_id: int, files: Sequence[UploadedFile]) -> UploadImagesResponse:
        report = await self.get(report_id)
        uploaded: List[str] = []
        errors: List[str] = []

        for filename, content_type, data in files:
            index = len(report.images) + len(uploaded)
            if index >= MAX_IMAGES_PER_REPORT:
                errors.append(f"{filename}: a report holds at most {MAX_IMAGES_PER_REPORT} images")
                continue
            try:
                uploaded.append(await self.blobs.put(report_id, index, data, content_type, filename))
            except InvalidContentError as e:
                errors.append(f"{filename}: {e}")

        if not uploaded and errors:
            raise InvalidContentError("; ".join(errors))
        if uploaded:
            await self.reports.update(report_id, {"images": report.images + uploaded})
        return UploadImagesResponse(success=not errors, uploaded_urls=uploaded, errors=errors)

    async def images(self, report_id: int) -> List[str]:
        await self.get(report_id)
        return await self.blobs.list(report_id)
