"""
Asset upload coordination.

Turns raw files into durable URLs through a blob service. Uploads for one
submission run concurrently and the caller only proceeds once every one of
them resolved. The blob services have no rollback, so URLs uploaded for a
submission that later fails are logged as orphans and left in place.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import httpx

from errors import UploadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class BlobService:
    async def upload(self, file: BlobFile) -> str:
        raise NotImplementedError


class MemoryBlobService(BlobService):
    def __init__(self, base_url: str = "memory://blobs"):
        self.base_url = base_url.rstrip("/")
        self.blobs: Dict[str, BlobFile] = {}

    async def upload(self, file: BlobFile) -> str:
        url = "%s/%s/%s" % (self.base_url, uuid.uuid4().hex, file.filename)
        self.blobs[url] = file
        return url


class CloudinaryBlobService(BlobService):
    """Unsigned uploads to Cloudinary's REST endpoint."""

    api_root = "https://api.cloudinary.com/v1_1"

    def __init__(self, cloud_name: str, upload_preset: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.timeout = timeout
        self.transport = transport

    def _get_async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_root, timeout=self.timeout, transport=self.transport)

    async def upload(self, file: BlobFile) -> str:
        files = {"file": (file.filename, file.content, file.content_type)}
        data = {"upload_preset": self.upload_preset}
        try:
            async with self._get_async_client() as client:
                response = await client.post("/%s/auto/upload" % self.cloud_name, data=data, files=files)
        except httpx.RequestError as e:
            logger.error("upload service unavailable: %s", e)
            raise UploadError(str(e)) from e
        if response.status_code != 200:
            raise UploadError("Upload of %s failed with HTTP %s" % (file.filename, response.status_code))
        try:
            return response.json()["secure_url"]
        except (ValueError, KeyError) as e:
            raise UploadError("Upload service returned no URL for %s" % file.filename) from e


class UploadCoordinator:
    def __init__(self, service: BlobService):
        self.service = service

    async def upload(self, file: BlobFile) -> str:
        logger.debug("uploading %s (%d bytes)", file.filename, len(file.content))
        try:
            return await self.service.upload(file)
        except UploadError:
            raise
        except Exception as e:
            raise UploadError("Upload of %s failed: %s" % (file.filename, e)) from e

    async def upload_all(self, files: Sequence[BlobFile]) -> List[str]:
        """Upload every file concurrently; fail as a whole if any one fails."""
        if not files:
            return []
        results = await asyncio.gather(*(self.upload(f) for f in files), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            self.report_orphans([r for r in results if isinstance(r, str)], "sibling upload failed")
            logger.error("upload batch failed: %s", failures[0])
            raise failures[0]
        return list(results)

    @staticmethod
    def report_orphans(urls: Sequence[str], reason: str) -> None:
        if urls:
            logger.warning("orphaned blobs (%s): %s", reason, ", ".join(urls))
