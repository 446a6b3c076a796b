from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, WebSocket, WebSocketDisconnect, status

from civiclens.core.dependencies import get_report_service
from civiclens.core.websocket import manager
from civiclens.schemas.analysis import AnalysisRecord, AnalyzeContentRequest, AnalyzeContentResponse
from civiclens.schemas.common import IssueCategory, IssueStatus
from civiclens.schemas.report import (
    CreateReportResponse,
    FlaggedReports,
    ModerationUpdate,
    PriorityUpdate,
    Report,
    ReportCreate,
    StatusUpdate,
    UploadImagesResponse,
    UpvoteResponse,
    VerificationUpdate,
)
from civiclens.services.reports import ReportService

router = APIRouter(
    prefix="/reports",
    tags=["reports"],
    responses={404: {"description": "Not found"}},
)

@router.websocket("/ws")
async def report_updates(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            # Clients only listen; anything they send is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)

@router.post("/", response_model=CreateReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    report: ReportCreate,
    wait_for_analysis: bool = False,
    service: ReportService = Depends(get_report_service),
):
    return await service.create(report, wait_for_analysis=wait_for_analysis)

@router.get("/", response_model=List[Report])
async def list_reports(
    category: Optional[IssueCategory] = None,
    status: Optional[IssueStatus] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    search: Optional[str] = None,
    service: ReportService = Depends(get_report_service),
):
    return await service.list(category=category, status=status, limit=limit, search=search)

@router.get("/flagged", response_model=FlaggedReports)
async def flagged_reports(service: ReportService = Depends(get_report_service)):
    return await service.flagged()

@router.post("/analyze", response_model=AnalyzeContentResponse)
async def analyze_content(request: AnalyzeContentRequest, service: ReportService = Depends(get_report_service)):
    return await service.analyze_content(request)

@router.get("/{report_id}", response_model=Report)
async def get_report(report_id: int, service: ReportService = Depends(get_report_service)):
    return await service.get(report_id)

@router.patch("/{report_id}/status", response_model=Report)
async def update_status(report_id: int, update: StatusUpdate, service: ReportService = Depends(get_report_service)):
    return await service.update_status(report_id, update.status)

@router.patch("/{report_id}/priority", response_model=Report)
async def update_priority(report_id: int, update: PriorityUpdate, service: ReportService = Depends(get_report_service)):
    return await service.update_priority(report_id, update.priority)

@router.patch("/{report_id}/moderation", response_model=Report)
async def moderate_report(report_id: int, update: ModerationUpdate, service: ReportService = Depends(get_report_service)):
    return await service.moderate(report_id, update.moderation_status)

@router.patch("/{report_id}/verification", response_model=Report)
async def verify_report(report_id: int, update: VerificationUpdate, service: ReportService = Depends(get_report_service)):
    return await service.verify(report_id, update.is_correct)

@router.post("/{report_id}/upvote", response_model=UpvoteResponse)
async def upvote_report(report_id: int, service: ReportService = Depends(get_report_service)):
    return await service.upvote(report_id)

@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(report_id: int, service: ReportService = Depends(get_report_service)):
    await service.delete(report_id)

@router.post("/{report_id}/images", response_model=UploadImagesResponse)
async def upload_images(
    report_id: int,
    files: List[UploadFile] = File(...),
    service: ReportService = Depends(get_report_service),
):
    uploads = []
    for upload in files:
        uploads.append((upload.filename or "", upload.content_type or "", await upload.read()))
    return await service.upload_images(report_id, uploads)

@router.get("/{report_id}/images", response_model=List[str])
async def list_images(report_id: int, service: ReportService = Depends(get_report_service)):
    return await service.images(report_id)

@router.get("/{report_id}/analyses", response_model=List[AnalysisRecord])
async def analysis_history(report_id: int, service: ReportService = Depends(get_report_service)):
    return await service.analyses(report_id)
