"""Hotspot prediction from co-located reports.

Reports are grouped by the first comma-separated part of their location.
Every group with at least two reports becomes a candidate prediction whose
risk depends on group size and on how many of its reports are recent.
Candidates close to an already active hotspot are dropped, which keeps
repeated runs over the same corpus idempotent.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from civiclens.schemas.analytics import AnalyticsEventType
from civiclens.schemas.common import IssueCategory, RiskLevel, as_utc, utcnow
from civiclens.schemas.hotspot import HotspotPrediction, HotspotRecord
from civiclens.schemas.report import Report
from civiclens.stores.base import EventLog, HotspotStore, ReportStore

logger = logging.getLogger(__name__)

MIN_CLUSTER_SIZE = 2
RECENT_WINDOW = timedelta(days=7)
PROXIMITY_DEGREES = 0.01
MAX_PROBABILITY = 0.95

# Used when no report in a group carries coordinates
SYNTHETIC_BASE_LAT = 18.5
SYNTHETIC_BASE_LNG = 73.8
SYNTHETIC_SPREAD = 0.1

TIMEFRAMES = {
    RiskLevel.critical: "Next few days",
    RiskLevel.high: "Next 1-2 weeks",
    RiskLevel.medium: "Next month",
    RiskLevel.low: "Next 2-3 months",
}


@dataclass
class LocationCluster:
    key: str
    reports: List[Report] = field(default_factory=list)
    recent: int = 0

    @property
    def count(self) -> int:
        return len(self.reports)

    @property
    def recent_ratio(self) -> float:
        return self.recent / self.count if self.count else 0.0

    def most_common_category(self) -> IssueCategory:
        counts: Dict[IssueCategory, int] = {}
        for report in self.reports:
            counts[report.category] = counts.get(report.category, 0) + 1
        # max() keeps the first key among equal counts, i.e. the first seen
        return max(counts, key=counts.get)

    def centroid(self) -> tuple:
        points = [(r.location_data.lat, r.location_data.lng) for r in self.reports if r.location_data]
        if points:
            return (
                sum(p[0] for p in points) / len(points),
                sum(p[1] for p in points) / len(points),
            )
        # Seeded by the key so the same group always lands on the same point
        rng = random.Random(self.key)
        return (
            SYNTHETIC_BASE_LAT + rng.random() * SYNTHETIC_SPREAD,
            SYNTHETIC_BASE_LNG + rng.random() * SYNTHETIC_SPREAD,
        )


def normalize_location(report: Report) -> str:
    location = report.location or (report.location_data.address if report.location_data else "") or "unknown"
    return location.lower().split(",")[0].strip() or "unknown"


def cluster_reports(reports: Iterable[Report], now: Optional[datetime] = None) -> Dict[str, LocationCluster]:
    now = now or utcnow()
    clusters: Dict[str, LocationCluster] = {}
    for report in reports:
        key = normalize_location(report)
        cluster = clusters.setdefault(key, LocationCluster(key))
        cluster.reports.append(report)
        if now - as_utc(report.created_at) <= RECENT_WINDOW:
            cluster.recent += 1
    return clusters


def risk_level(count: int, recent_ratio: float) -> RiskLevel:
    if count >= 5 and recent_ratio > 0.5:
        return RiskLevel.critical
    if count >= 3 or recent_ratio > 0.3:
        return RiskLevel.high
    if count >= 2:
        return RiskLevel.medium
    return RiskLevel.low


def hotspot_probability(count: int, recent_ratio: float) -> float:
    return min(0.5 + count * 0.1 + recent_ratio * 0.2, MAX_PROBABILITY)


def prediction_from_cluster(cluster: LocationCluster) -> HotspotPrediction:
    risk = risk_level(cluster.count, cluster.recent_ratio)
    lat, lng = cluster.centroid()
    return HotspotPrediction(
        location=cluster.key[:1].upper() + cluster.key[1:],
        lat=lat,
        lng=lng,
        predicted_category=cluster.most_common_category(),
        risk_level=risk,
        probability=hotspot_probability(cluster.count, cluster.recent_ratio),
        reasoning=(
            f"Based on {cluster.count} historical issues in this area, "
            f"with {cluster.recent} reported recently."
        ),
        predicted_timeframe=TIMEFRAMES[risk],
    )


def is_near(prediction: HotspotPrediction, others: Sequence[HotspotPrediction]) -> bool:
    return any(
        abs(other.lat - prediction.lat) < PROXIMITY_DEGREES and abs(other.lng - prediction.lng) < PROXIMITY_DEGREES
        for other in others
    )


def predict_hotspots(
    reports: Iterable[Report],
    active: Sequence[HotspotPrediction] = (),
    now: Optional[datetime] = None,
) -> List[HotspotPrediction]:
    """Pure part of the clusterer: new predictions not near ``active`` ones."""
    accepted: List[HotspotPrediction] = []
    for cluster in cluster_reports(reports, now).values():
        if cluster.count < MIN_CLUSTER_SIZE:
            continue
        prediction = prediction_from_cluster(cluster)
        if is_near(prediction, list(active) + accepted):
            logger.debug("Skipping %s, an active hotspot is already nearby", prediction.location)
            continue
        accepted.append(prediction)
    return accepted


class HotspotClusterer:
    def __init__(self, reports: ReportStore, hotspots: HotspotStore, events: EventLog, max_age_days: int = 30):
        self.reports = reports
        self.hotspots = hotspots
        self.events = events
        self.max_age_days = max_age_days

    async def generate(self, now: Optional[datetime] = None) -> List[HotspotRecord]:
        """Scan every report and persist new hotspot predictions.

        Failures are logged and yield an empty list; hotspot generation runs
        on its own schedule and never takes part in report creation.
        """
        now = now or utcnow()
        try:
            corpus = await self.reports.list()
            active = await self.hotspots.list_active()
            stored = []
            for prediction in predict_hotspots(corpus, active, now):
                record = await self.hotspots.add(prediction)
                stored.append(record)
                await self.events.log(AnalyticsEventType.hotspot_predicted, {
                    "hotspot_id": record.id,
                    "location": record.location,
                    "risk_level": record.risk_level.value,
                    "predicted_category": record.predicted_category.value,
                })
            logger.info("Hotspot scan over %d reports stored %d new predictions", len(corpus), len(stored))
            return stored
        except Exception:
            logger.exception("Hotspot prediction failed")
            return []

    async def expire(self, now: Optional[datetime] = None) -> int:
        count = await self.hotspots.deactivate_expired(now or utcnow(), self.max_age_days)
        if count:
            logger.info("Deactivated %d hotspots older than %d days", count, self.max_age_days)
        return count
