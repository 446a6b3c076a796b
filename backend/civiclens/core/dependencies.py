from fastapi import Request

from civiclens.services.analytics import AnalyticsService
from civiclens.services.hotspots import HotspotService
from civiclens.services.reports import ReportService


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_hotspot_service(request: Request) -> HotspotService:
    return request.app.state.hotspot_service


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.analytics_service
