import asyncio
import logging
from typing import List

from civiclens.analysis.hotspots import HotspotClusterer
from civiclens.core.exceptions import NotFoundError
from civiclens.schemas.hotspot import HotspotRecord
from civiclens.stores.base import HotspotStore

logger = logging.getLogger(__name__)


class HotspotService:
    def __init__(self, hotspots: HotspotStore, clusterer: HotspotClusterer):
        self.hotspots = hotspots
        self.clusterer = clusterer

    async def active(self) -> List[HotspotRecord]:
        return await self.hotspots.list_active()

    async def generate(self) -> List[HotspotRecord]:
        return await self.clusterer.generate()

    async def expire(self) -> int:
        return await self.clusterer.expire()

    async def update_accuracy(self, hotspot_id: int, actual_issues_count: int) -> HotspotRecord:
        if await self.hotspots.get(hotspot_id) is None:
            raise NotFoundError("Hotspot", hotspot_id)
        return await self.hotspots.update_accuracy(hotspot_id, actual_issues_count)

    async def run_periodically(self, interval_seconds: float):
        """Expire stale hotspots and predict new ones every ``interval_seconds``."""
        while True:
            try:
                await self.expire()
                await self.generate()
            except Exception:
                logger.exception("Scheduled hotspot refresh failed")
            await asyncio.sleep(interval_seconds)
