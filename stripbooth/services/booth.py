import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from stripbooth.config import settings
from stripbooth.errors import CompositeUnavailable
from stripbooth.services.sequencer import CaptureSequencer
from stripbooth.services.stickers import StickerLayer, bake_in

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportedStrip:
    png: bytes
    width: int
    height: int


class BoothSession:
    """One visitor's session: the capture sequencer plus the sticker layer edited on top of its strip."""

    def __init__(self, sequencer: CaptureSequencer, stickers: Optional[StickerLayer] = None, session_id: Optional[str] = None):
        self.session_id = session_id or sequencer.session_ref or str(uuid.uuid4())
        self.sequencer = sequencer
        self.stickers = stickers or StickerLayer()

    async def export(self, preview_width: Optional[float] = None) -> ExportedStrip:
        """Bake stickers into a copy of the current strip and hand it to the export adapter.

        The on-screen composite is left untouched. Persistence runs in the
        background; its failure never affects the returned strip.
        """
        composite = self.sequencer.composite
        if composite is None:
            raise CompositeUnavailable()

        preview_width = preview_width or settings.sticker_preview_width
        final = await asyncio.to_thread(bake_in, composite.png, self.stickers.list(), preview_width)
        clean = await self.sequencer.render_clean()
        self.sequencer.upload_composite(final, clean)

        logger.info("Exported strip for session %s with %d stickers", self.session_id, len(self.stickers))
        return ExportedStrip(png=final, width=composite.width, height=composite.height)

    def reset(self):
        self.sequencer.reset()
        self.stickers.clear()

    def close(self):
        self.sequencer.close()
