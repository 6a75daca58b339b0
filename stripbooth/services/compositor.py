import asyncio
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import httpx
from PIL import Image

from stripbooth.errors import DecodeFailure, SessionIncomplete, SlotCountMismatch
from stripbooth.models.editing import FilterPreset
from stripbooth.models.session import Slot, TemplateDescriptor
from stripbooth.services import filters
from stripbooth.services.artwork import ArtworkLoader, artwork_loader
from stripbooth.services.imaging import decode_raster_async, encode_png, reraise_interrupts

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


@dataclass(frozen=True)
class CompositeRaster:
    png: bytes
    width: int
    height: int


def cover_fit(src_width: float, src_height: float, rect_width: float, rect_height: float) -> Tuple[float, float, float, float]:
    """Centred source crop box whose aspect ratio matches the target rect.

    Scaling that box onto the rect covers it completely; the excess of the
    photo along one axis is cropped evenly from both sides.
    """
    photo_aspect = src_width / src_height
    rect_aspect = rect_width / rect_height
    if photo_aspect > rect_aspect:
        crop_width = src_height * rect_aspect
        left = (src_width - crop_width) / 2
        return left, 0.0, left + crop_width, float(src_height)
    crop_height = src_width / rect_aspect
    top = (src_height - crop_height) / 2
    return 0.0, top, float(src_width), top + crop_height


def ensure_composable(slots: Sequence[Slot], template: TemplateDescriptor):
    if len(slots) != template.slot_count:
        raise SlotCountMismatch(template.slot_count, len(slots))
    empty = [slot.index for slot in slots if not slot.is_filled or slot.image is None]
    if empty:
        raise SessionIncomplete(empty)


class Compositor:
    def __init__(self, loader: ArtworkLoader = None):
        self.loader = loader or artwork_loader

    async def compose(self, slots: Sequence[Slot], preset: FilterPreset, template: TemplateDescriptor) -> CompositeRaster:
        ensure_composable(slots, template)

        # Nothing is drawn until the artwork and every photo have decoded
        results = reraise_interrupts(await asyncio.gather(
            self._load_artwork(template.frame_artwork_url),
            *(decode_raster_async(slot.image) for slot in slots),
            return_exceptions=True,
        ))

        artwork, photos = results[0], list(results[1:])
        if isinstance(artwork, Exception):
            logger.warning("Frame artwork %s failed to load: %s", template.frame_artwork_url, artwork)
            if isinstance(artwork, DecodeFailure):
                raise artwork
            raise DecodeFailure(artwork=True, detail=str(artwork))

        failed = [slot.index for slot, photo in zip(slots, photos) if isinstance(photo, Exception)]
        if failed:
            logger.warning("Photos in slots %s failed to decode", failed)
            raise DecodeFailure(slot_indices=failed)

        composite = await asyncio.to_thread(self.draw, photos, artwork, preset, template)
        logger.info(
            "Composited %d photos onto %dx%d frame '%s' with filter '%s'",
            len(photos), composite.width, composite.height, template.template_id, preset.name,
        )
        return composite

    async def _load_artwork(self, ref: str) -> Image.Image:
        try:
            data = await self.loader.load(ref)
        except (OSError, ValueError, httpx.HTTPError) as e:
            raise DecodeFailure(artwork=True, detail=str(e)) from e
        try:
            return await decode_raster_async(data)
        except ValueError as e:
            raise DecodeFailure(artwork=True, detail=str(e)) from e

    @staticmethod
    def draw(photos: List[Image.Image], artwork: Image.Image, preset: FilterPreset, template: TemplateDescriptor) -> CompositeRaster:
        # Output size is the artwork's native size, never the camera's
        canvas = Image.new("RGB", artwork.size, WHITE)

        for photo, rect in zip(photos, template.rects):
            left, top, width, height = rect.box()
            box = cover_fit(photo.width, photo.height, width, height)
            tile = photo.resize((width, height), Image.Resampling.LANCZOS, box=box)
            tile = filters.apply(tile, preset)
            canvas.paste(tile, (left, top), tile)

        canvas.paste(artwork, (0, 0), artwork)
        return CompositeRaster(png=encode_png(canvas), width=canvas.width, height=canvas.height)


compositor = Compositor()
