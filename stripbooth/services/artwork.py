import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Optional

import httpx

from stripbooth.config import settings

logger = logging.getLogger(__name__)


class ArtworkLoader:
    """Resolves a template's frame artwork reference to raw image bytes.

    ``http(s)://`` references are fetched with httpx, ``data:`` URLs are
    decoded inline and anything else is read from the filesystem.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.upload_timeout

    async def load(self, ref: str) -> bytes:
        if ref.startswith(("http://", "https://")):
            return await self._fetch(ref)
        if ref.startswith("data:"):
            return self._decode_data_url(ref)
        return await asyncio.to_thread(Path(ref).read_bytes)

    async def _fetch(self, url: str) -> bytes:
        logger.debug("Fetching frame artwork from %s", url)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    @staticmethod
    def _decode_data_url(ref: str) -> bytes:
        header, sep, payload = ref.partition(",")
        if not sep or not header.endswith(";base64"):
            raise ValueError("only base64 data URLs are supported")
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 payload: {e}") from e


artwork_loader = ArtworkLoader()
