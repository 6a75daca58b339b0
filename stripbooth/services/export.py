import asyncio
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import httpx

from stripbooth.config import settings

logger = logging.getLogger(__name__)


def photo_filename(prefix: str = "photo") -> str:
    return f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}.png"


class ExportAdapter(ABC):
    """Downstream persistence for raw captures and finished strips.

    Implementations may raise anything; callers treat every failure as a
    non-fatal upload failure.
    """

    @abstractmethod
    async def upload_raw_capture(self, slot_index: int, raster: bytes) -> str:
        """Persist one capture and return its id. The stored order is ``slot_index + 1``."""

    @abstractmethod
    async def upload_composite(
        self,
        raster: bytes,
        session_ref: str,
        template_ref: str,
        clean: Optional[bytes] = None,
    ) -> Optional[str]:
        """Persist a finished strip; ``clean`` is the variant without filter or stickers."""


class LocalExportAdapter(ExportAdapter):
    def __init__(self, photos_dir: Optional[str] = None):
        self.photos_dir = photos_dir or settings.photos_dir
        os.makedirs(self.photos_dir, exist_ok=True)

    def save_photo(self, raster: bytes, filename: Optional[str] = None) -> str:
        if filename is None:
            filename = photo_filename()

        filepath = os.path.join(self.photos_dir, filename)
        with open(filepath, "wb") as f:
            f.write(raster)

        return filename

    async def upload_raw_capture(self, slot_index: int, raster: bytes) -> str:
        filename = photo_filename(f"capture_{slot_index + 1}")
        return await asyncio.to_thread(self.save_photo, raster, filename)

    async def upload_composite(self, raster, session_ref, template_ref, clean=None):
        filename = await asyncio.to_thread(self.save_photo, raster, photo_filename(f"strip_{template_ref}"))
        if clean is not None:
            await asyncio.to_thread(self.save_photo, clean, filename.replace("strip_", "clean_", 1))
        logger.info("Saved strip for session %s as %s", session_ref, filename)
        return filename


class HttpExportAdapter(ExportAdapter):
    """Posts captures and strips to a gallery service over HTTP."""

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.upload_timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def upload_raw_capture(self, slot_index: int, raster: bytes) -> str:
        async with self._client() as client:
            response = await client.post(
                "/photos",
                data={"order": str(slot_index + 1)},
                files={"photo": (f"capture_{slot_index + 1}.png", raster, "image/png")},
            )
            response.raise_for_status()
            return str(response.json()["id"])

    async def upload_composite(self, raster, session_ref, template_ref, clean=None):
        files = {"composite": ("strip.png", raster, "image/png")}
        if clean is not None:
            files["clean"] = ("strip_clean.png", clean, "image/png")
        async with self._client() as client:
            response = await client.post(
                "/composites",
                data={"session_id": session_ref, "template_id": template_ref},
                files=files,
            )
            response.raise_for_status()
            return response.json().get("id")


def build_export_adapter() -> ExportAdapter:
    if settings.export_base_url:
        return HttpExportAdapter(settings.export_base_url)
    return LocalExportAdapter()
