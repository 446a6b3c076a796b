"""MinIO-backed image storage."""
import asyncio
import io
import logging
import time
from typing import List

from minio import Minio

from civiclens.core.config import Settings
from civiclens.core.retry import retrying
from civiclens.stores.base import BlobStore, blob_path, validate_image

logger = logging.getLogger(__name__)


class MinioBlobStore(BlobStore):
    """Stores report images under ``reports/<report_id>/`` in one bucket.

    The minio client is synchronous, so every call runs in a worker thread.
    URLs are plain object URLs; the bucket is expected to allow anonymous
    reads.
    """

    def __init__(self, client: Minio, bucket: str, public_base_url: str, retries: int = 3, backoff: float = 0.5):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.retries = retries
        self.backoff = backoff

    @classmethod
    def from_settings(cls, settings: Settings) -> "MinioBlobStore":
        client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        scheme = "https" if settings.MINIO_SECURE else "http"
        return cls(
            client,
            settings.MINIO_BUCKET,
            f"{scheme}://{settings.MINIO_ENDPOINT}/{settings.MINIO_BUCKET}",
            retries=settings.STORE_RETRIES,
            backoff=settings.STORE_BACKOFF_SECONDS,
        )

    @retrying
    async def ensure_bucket(self) -> None:
        exists = await asyncio.to_thread(self.client.bucket_exists, self.bucket)
        if not exists:
            await asyncio.to_thread(self.client.make_bucket, self.bucket)
            logger.info("Created bucket %s", self.bucket)

    def url_for(self, path: str) -> str:
        return f"{self.public_base_url}/{path}"

    async def put(self, report_id: int, index: int, data: bytes, content_type: str, filename: str = "") -> str:
        validate_image(data, content_type)
        path = blob_path(report_id, index, int(time.time() * 1000), filename, content_type)
        await self._upload(path, data, content_type, report_id)
        return self.url_for(path)

    @retrying
    async def _upload(self, path: str, data: bytes, content_type: str, report_id: int) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            self.bucket,
            path,
            io.BytesIO(data),
            len(data),
            content_type=content_type,
            metadata={"report-id": str(report_id)},
        )

    @retrying
    async def list(self, report_id: int) -> List[str]:
        objects = await asyncio.to_thread(
            lambda: list(self.client.list_objects(self.bucket, prefix=f"reports/{report_id}/", recursive=True))
        )
        return [self.url_for(obj.object_name) for obj in objects]

    @retrying
    async def delete_all(self, report_id: int) -> int:
        objects = await asyncio.to_thread(
            lambda: list(self.client.list_objects(self.bucket, prefix=f"reports/{report_id}/", recursive=True))
        )
        for obj in objects:
            await asyncio.to_thread(self.client.remove_object, self.bucket, obj.object_name)
        return len(objects)
