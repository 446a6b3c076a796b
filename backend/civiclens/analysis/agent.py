"""Analysis workflow run on every submitted report.

The steps are nodes of a LangGraph StateGraph executed in a fixed order:

    classify_content -> generate_title -> enhance_description -> score_spam
        -> detect_duplicates -> extract_location -> assess_quality

A node that raises contributes a neutral value and its name to ``errors``;
the following nodes still run. If the graph as a whole fails or times out,
or the result cannot be persisted, the caller gets ``default_result()``.
"""
import asyncio
import functools
import logging
import operator
import random
import time
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Optional, TypedDict

import httpx
from langgraph.graph import END, StateGraph

from civiclens.analysis.classifier import CategoryFallback, predict_category
from civiclens.analysis.similarity import DEFAULT_DUPLICATE_THRESHOLD, DuplicateCheck, check_duplicate
from civiclens.analysis.simulation import (
    SimulatedDelay,
    assess_image_quality,
    enhance_description,
    extract_image_location,
    suggest_title,
)
from civiclens.analysis.spam import DEFAULT_SPAM_THRESHOLD, SpamResult, score_spam
from civiclens.schemas.analysis import AnalysisResult, ExtractedLocation
from civiclens.schemas.analytics import AnalyticsEventType
from civiclens.schemas.common import ImageQuality, IssueCategory, clamp, utcnow
from civiclens.stores.base import AnalysisLog, EventLog, ReportStore

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Civic issue report"


@dataclass
class AnalysisConfig:
    spam_threshold: float = DEFAULT_SPAM_THRESHOLD
    duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD
    category_fallback: CategoryFallback = CategoryFallback.OTHER
    exif_success_probability: float = 0.3
    simulate_delay: bool = False
    timeout_seconds: float = 10.0
    use_external_api: bool = False
    external_api_url: str = ""
    random_seed: Optional[int] = None

    @classmethod
    def from_settings(cls, settings) -> "AnalysisConfig":
        return cls(
            spam_threshold=settings.SPAM_THRESHOLD,
            duplicate_threshold=settings.DUPLICATE_THRESHOLD,
            category_fallback=CategoryFallback(settings.CATEGORY_FALLBACK),
            exif_success_probability=settings.EXIF_SUCCESS_PROBABILITY,
            simulate_delay=settings.SIMULATE_DELAY,
            timeout_seconds=settings.ANALYSIS_TIMEOUT_SECONDS,
            use_external_api=settings.USE_EXTERNAL_API,
            external_api_url=settings.EXTERNAL_API_URL,
            random_seed=settings.RANDOM_SEED,
        )

    @property
    def external_enabled(self) -> bool:
        return self.use_external_api and bool(self.external_api_url)


class AnalysisState(TypedDict):
    """State passed between the workflow nodes"""
    errors: Annotated[List[str], operator.add]
    report_id: Optional[int]
    title: str
    description: str
    image_url: str
    location: Optional[str]

    category: IssueCategory
    category_confidence: float
    suggested_title: str
    enhanced_description: str
    spam: SpamResult
    duplicate: DuplicateCheck
    extracted_location: Optional[ExtractedLocation]
    image_quality: ImageQuality
    image_quality_score: float


def isolated(step: str, **neutral):
    """Turn an exception raised by a node into ``neutral`` plus an error entry."""

    def decorate(node):
        @functools.wraps(node)
        async def wrapper(self, state: AnalysisState) -> Dict[str, Any]:
            try:
                return await node(self, state)
            except Exception:
                logger.exception("Analysis step %s failed for report %s", step, state.get("report_id"))
                return {**neutral, "errors": [step]}

        return wrapper

    return decorate


def default_result(description: str = "", title: str = "") -> AnalysisResult:
    """Neutral result returned whenever the analysis cannot complete."""
    return AnalysisResult(
        suggested_title=title or DEFAULT_TITLE,
        enhanced_description=description,
        predicted_category=IssueCategory.other,
        category_confidence=0.0,
        is_duplicate=False,
        is_spam=False,
        spam_score=0.0,
        image_quality=ImageQuality.poor,
        image_quality_score=0.0,
    )


def result_from_state(state: AnalysisState) -> AnalysisResult:
    spam = state["spam"]
    duplicate = state["duplicate"]
    return AnalysisResult(
        suggested_title=state["suggested_title"],
        enhanced_description=state["enhanced_description"],
        predicted_category=state["category"],
        category_confidence=clamp(state["category_confidence"]),
        is_duplicate=duplicate.is_duplicate,
        duplicate_report_id=duplicate.report_id if duplicate.is_duplicate else None,
        duplicate_similarity=clamp(duplicate.similarity) if duplicate.is_duplicate else None,
        is_spam=spam.is_spam,
        spam_score=clamp(spam.score),
        spam_reasons=spam.reasons,
        extracted_location=state["extracted_location"],
        image_quality=state["image_quality"],
        image_quality_score=clamp(state["image_quality_score"]),
    )


class AnalysisOrchestrator:
    def __init__(
        self,
        reports: ReportStore,
        analysis_log: AnalysisLog,
        events: EventLog,
        config: Optional[AnalysisConfig] = None,
        rng: Optional[random.Random] = None,
        delay: Optional[SimulatedDelay] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.transport = transport
        self.reports = reports
        self.analysis_log = analysis_log
        self.events = events
        self.config = config or AnalysisConfig()
        self.rng = rng or random.Random(self.config.random_seed)
        self.delay = delay or SimulatedDelay(self.rng, self.config.simulate_delay)
        self.workflow = self.create_workflow()

    def create_workflow(self):
        workflow = StateGraph(AnalysisState)

        workflow.add_node("classify_content", self.classify_content)
        workflow.add_node("generate_title", self.generate_title)
        workflow.add_node("enhance_description", self.enhance_description)
        workflow.add_node("score_spam", self.score_spam)
        workflow.add_node("detect_duplicates", self.detect_duplicates)
        workflow.add_node("extract_location", self.extract_location)
        workflow.add_node("assess_quality", self.assess_quality)

        workflow.set_entry_point("classify_content")
        workflow.add_edge("classify_content", "generate_title")
        workflow.add_edge("generate_title", "enhance_description")
        workflow.add_edge("enhance_description", "score_spam")
        workflow.add_edge("score_spam", "detect_duplicates")
        workflow.add_edge("detect_duplicates", "extract_location")
        workflow.add_edge("extract_location", "assess_quality")
        workflow.add_edge("assess_quality", END)

        return workflow.compile()

    # Nodes

    @isolated("classify_content", category=IssueCategory.other, category_confidence=0.0)
    async def classify_content(self, state: AnalysisState) -> Dict[str, Any]:
        await self.delay(300, 800)
        category, confidence = predict_category(
            state["description"],
            self.rng,
            fallback=self.config.category_fallback,
            has_image=bool(state["image_url"]),
        )
        return {"category": category, "category_confidence": confidence}

    @isolated("generate_title", suggested_title=DEFAULT_TITLE)
    async def generate_title(self, state: AnalysisState) -> Dict[str, Any]:
        return {"suggested_title": suggest_title(state["category"], self.rng, state["location"])}

    @isolated("enhance_description")
    async def enhance_description(self, state: AnalysisState) -> Dict[str, Any]:
        return {"enhanced_description": enhance_description(state["description"], state["category"])}

    @isolated("score_spam", spam=SpamResult(is_spam=False, score=0.0))
    async def score_spam(self, state: AnalysisState) -> Dict[str, Any]:
        await self.delay(100, 300)
        return {"spam": score_spam(state["description"], self.config.spam_threshold)}

    @isolated("detect_duplicates", duplicate=DuplicateCheck(is_duplicate=False))
    async def detect_duplicates(self, state: AnalysisState) -> Dict[str, Any]:
        await self.delay(200, 500)
        corpus = await self.reports.list()
        duplicate = check_duplicate(
            state["title"],
            state["description"],
            state["location"] or "",
            corpus,
            threshold=self.config.duplicate_threshold,
            exclude_id=state["report_id"],
        )
        if duplicate.is_duplicate:
            logger.info(
                "Report %s looks like a duplicate of %s (similarity %.2f)",
                state["report_id"], duplicate.report_id, duplicate.similarity,
            )
        return {"duplicate": duplicate}

    @isolated("extract_location", extracted_location=None)
    async def extract_location(self, state: AnalysisState) -> Dict[str, Any]:
        await self.delay(100, 300)
        location = extract_image_location(state["image_url"], self.rng, self.config.exif_success_probability)
        return {"extracted_location": location}

    @isolated("assess_quality", image_quality=ImageQuality.poor, image_quality_score=0.0)
    async def assess_quality(self, state: AnalysisState) -> Dict[str, Any]:
        if not state["image_url"]:
            return {"image_quality": ImageQuality.poor, "image_quality_score": 0.0}
        quality, score = assess_image_quality(state["image_url"], self.rng)
        return {"image_quality": quality, "image_quality_score": score}

    # Running

    def initial_state(self, report_id, title, description, image_url, location) -> AnalysisState:
        return AnalysisState(
            errors=[],
            report_id=report_id,
            title=title,
            description=description,
            image_url=image_url,
            location=location,
            category=IssueCategory.other,
            category_confidence=0.0,
            suggested_title=title or DEFAULT_TITLE,
            enhanced_description=description,
            spam=SpamResult(is_spam=False, score=0.0),
            duplicate=DuplicateCheck(is_duplicate=False),
            extracted_location=None,
            image_quality=ImageQuality.poor,
            image_quality_score=0.0,
        )

    async def run_workflow(self, report_id, title, description, image_url, location) -> AnalysisResult:
        state = await self.workflow.ainvoke(self.initial_state(report_id, title, description, image_url, location))
        if state["errors"]:
            logger.warning("Analysis of report %s degraded in: %s", report_id, ", ".join(state["errors"]))
        return result_from_state(state)

    async def run_external(self, description: str, image_url: str) -> AnalysisResult:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout_seconds) as client:
            response = await client.post(
                self.config.external_api_url,
                json={"imageUrl": image_url, "description": description},
            )
            response.raise_for_status()
        return AnalysisResult.model_validate(response.json())

    async def analyze(
        self,
        description: str,
        image_url: str = "",
        location: Optional[str] = None,
        report_id: Optional[int] = None,
        title: str = "",
    ) -> AnalysisResult:
        """Analyse one submission and, when ``report_id`` is given, persist it.

        Never raises: every failure ends in ``default_result()``.
        """
        started = time.perf_counter()
        try:
            if self.config.external_enabled:
                run = self.run_external(description, image_url)
            else:
                run = self.run_workflow(report_id, title, description, image_url, location)
            result = await asyncio.wait_for(run, timeout=self.config.timeout_seconds)

            processing_time_ms = int((time.perf_counter() - started) * 1000)
            if report_id is not None:
                await self.persist(report_id, result, processing_time_ms)
            return result
        except asyncio.TimeoutError:
            logger.error("Analysis of report %s timed out after %.1fs", report_id, self.config.timeout_seconds)
        except Exception:
            logger.exception("Analysis of report %s failed", report_id)
        return default_result(description, title)

    async def persist(self, report_id: int, result: AnalysisResult, processing_time_ms: int):
        await self.analysis_log.append(report_id, result, processing_time_ms)

        duplicate_of = result.duplicate_report_id if result.is_duplicate else None
        if duplicate_of == report_id:
            duplicate_of = None
        await self.reports.update(report_id, {
            "analysis": result,
            "analyzed_at": utcnow(),
            "flagged_as_spam": result.is_spam,
            "duplicate_of": duplicate_of,
        })

        await self.events.log(AnalyticsEventType.ml_analysis, {
            "report_id": report_id,
            "processing_time_ms": processing_time_ms,
            "category": result.predicted_category.value,
            "confidence": result.category_confidence,
        })
        if duplicate_of is not None:
            await self.events.log(AnalyticsEventType.duplicate_detected, {
                "report_id": report_id,
                "duplicate_of": duplicate_of,
                "similarity": result.duplicate_similarity,
            })
        if result.is_spam:
            await self.events.log(AnalyticsEventType.spam_detected, {
                "report_id": report_id,
                "spam_score": result.spam_score,
                "reasons": result.spam_reasons,
            })
