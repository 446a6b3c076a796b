from typing import List

from fastapi import APIRouter, Depends, Query

from civiclens.core.dependencies import get_analytics_service
from civiclens.schemas.analytics import AnalyticsEvent, AnalyticsSummary, ModelPerformance
from civiclens.services.analytics import AnalyticsService

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
)

@router.get("/summary", response_model=AnalyticsSummary)
async def summary(service: AnalyticsService = Depends(get_analytics_service)):
    return await service.summary()

@router.get("/events", response_model=List[AnalyticsEvent])
async def recent_events(
    limit: int = Query(50, ge=1, le=500),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return await service.recent_events(limit)

@router.get("/performance", response_model=ModelPerformance)
async def model_performance(service: AnalyticsService = Depends(get_analytics_service)):
    return await service.model_performance()
