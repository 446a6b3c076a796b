from typing import List

from fastapi import APIRouter, Depends

from civiclens.core.dependencies import get_hotspot_service
from civiclens.schemas.hotspot import AccuracyUpdate, ExpiredHotspots, HotspotRecord
from civiclens.services.hotspots import HotspotService

router = APIRouter(
    prefix="/hotspots",
    tags=["hotspots"],
    responses={404: {"description": "Not found"}},
)

@router.get("/", response_model=List[HotspotRecord])
async def active_hotspots(service: HotspotService = Depends(get_hotspot_service)):
    return await service.active()

@router.post("/generate", response_model=List[HotspotRecord])
async def generate_hotspots(service: HotspotService = Depends(get_hotspot_service)):
    return await service.generate()

@router.post("/expire", response_model=ExpiredHotspots)
async def expire_hotspots(service: HotspotService = Depends(get_hotspot_service)):
    return ExpiredHotspots(deactivated=await service.expire())

@router.put("/{hotspot_id}/accuracy", response_model=HotspotRecord)
async def update_accuracy(hotspot_id: int, update: AccuracyUpdate, service: HotspotService = Depends(get_hotspot_service)):
    return await service.update_accuracy(hotspot_id, update.actual_issues_count)
