import logging
import math
import uuid
from functools import lru_cache
from typing import List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from stripbooth.errors import StickerNotFound
from stripbooth.models.editing import (
    STICKER_DEFAULT_SIZE,
    STICKER_MAX_PCT,
    STICKER_MAX_SIZE,
    STICKER_MIN_PCT,
    STICKER_MIN_SIZE,
    Sticker,
    StickerCategory,
)
from stripbooth.services.imaging import decode_raster, encode_png

logger = logging.getLogger(__name__)

STICKER_CATALOG = [
    StickerCategory(
        key="emoji",
        name="Emoji",
        stickers=["😀", "😂", "❤️", "🎉", "🔥", "⭐", "👍", "✨", "🎈", "🎊", "💯", "🚀"],
    ),
    StickerCategory(
        key="decorative",
        name="Decorative",
        stickers=["✓", "❋", "✦", "❖", "◈", "❉", "✻", "✼", "❇️", "✵", "✶", "✷"],
    ),
    StickerCategory(
        key="flowers",
        name="Flowers",
        stickers=["🌸", "🌼", "🌻", "🌷", "🌹", "🥀", "🌺", "🏵️", "💐", "🌿", "🍀", "🌱"],
    ),
]

EMOJI_FONT_PATHS = [
    "/usr/share/fonts/truetype/noto/NotoColorEmoji.ttf",
    "/usr/share/fonts/noto/NotoColorEmoji.ttf",
    "/System/Library/Fonts/Apple Color Emoji.ttc",
    "seguiemj.ttf",
]
TEXT_FONT_PATHS = [
    "arial.ttf",
    "/System/Library/Fonts/Arial.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
]
# Colour emoji fonts ship a single bitmap strike at this size
EMOJI_BITMAP_SIZE = 109


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class StickerLayer:
    """Ordered sticker overlays for one editing session; list order is z-order."""

    def __init__(self):
        self._stickers: List[Sticker] = []

    def __len__(self):
        return len(self._stickers)

    def list(self) -> List[Sticker]:
        return list(self._stickers)

    def get(self, sticker_id: str) -> Sticker:
        for sticker in self._stickers:
            if sticker.id == sticker_id:
                return sticker
        raise StickerNotFound(sticker_id)

    def add(self, content: str) -> Sticker:
        sticker = Sticker(id=uuid.uuid4().hex[:12], content=content, size_px=STICKER_DEFAULT_SIZE)
        self._stickers.append(sticker)
        return sticker

    def remove(self, sticker_id: str):
        self._stickers.remove(self.get(sticker_id))

    def clear(self):
        self._stickers.clear()

    def move(self, sticker_id: str, x_pct: float, y_pct: float) -> Sticker:
        sticker = self.get(sticker_id)
        # A drop reported at the origin is a cancelled drag
        if x_pct == 0 and y_pct == 0:
            return sticker
        sticker.x_pct = clamp(x_pct, STICKER_MIN_PCT, STICKER_MAX_PCT)
        sticker.y_pct = clamp(y_pct, STICKER_MIN_PCT, STICKER_MAX_PCT)
        return sticker

    def resize(self, sticker_id: str, delta_px: float) -> Sticker:
        sticker = self.get(sticker_id)
        sticker.size_px = clamp(sticker.size_px + delta_px, STICKER_MIN_SIZE, STICKER_MAX_SIZE)
        return sticker

    def rotate(self, sticker_id: str, delta_deg: float) -> Sticker:
        sticker = self.get(sticker_id)
        sticker.rotation_deg = (sticker.rotation_deg + delta_deg) % 360.0
        # float modulo of a tiny negative rounds up to 360.0
        if sticker.rotation_deg >= 360.0:
            sticker.rotation_deg = 0.0
        return sticker


def font_scale(target_width: float, preview_width: float) -> float:
    """Sub-linear growth so stickers stay proportionate on large exports."""
    return math.sqrt(target_width / preview_width)


def _is_pictographic(content: str) -> bool:
    return any(ord(ch) >= 0x2190 for ch in content)


@lru_cache(maxsize=64)
def _load_font(pictographic: bool, size: int) -> Tuple[ImageFont.ImageFont, int]:
    paths = EMOJI_FONT_PATHS + TEXT_FONT_PATHS if pictographic else TEXT_FONT_PATHS
    for path in paths:
        for native_size in (size, EMOJI_BITMAP_SIZE):
            try:
                return ImageFont.truetype(path, native_size), native_size
            except OSError:
                continue
    logger.debug("No sticker font found, using Pillow's default font")
    return ImageFont.load_default(size=size), size


def render_glyph(content: str, font_size: int) -> Image.Image:
    """Transparent square tile with ``content`` centred on it at ``font_size``."""
    font, native_size = _load_font(_is_pictographic(content), font_size)
    side = native_size * 2 + 4
    tile = Image.new("RGBA", (side, side), (0, 0, 0, 0))
    draw = ImageDraw.Draw(tile)
    draw.text((side / 2, side / 2), content, font=font, fill=(0, 0, 0, 255), anchor="mm", embedded_color=True)
    if native_size != font_size:
        scaled = max(1, round(side * font_size / native_size))
        tile = tile.resize((scaled, scaled), Image.Resampling.LANCZOS)
    return tile


def bake_in(raster_png: bytes, stickers: Sequence[Sticker], preview_width: float) -> bytes:
    """Render ``stickers`` into a copy of ``raster_png`` and return the new PNG.

    Positions are percentages of the target raster's own pixel size; font
    sizes were authored against an on-screen preview ``preview_width`` wide.
    """
    canvas = decode_raster(raster_png).convert("RGB")
    width, height = canvas.size
    scale = font_scale(width, preview_width)

    for sticker in stickers:
        center_x = sticker.x_pct / 100.0 * width
        center_y = sticker.y_pct / 100.0 * height
        tile = render_glyph(sticker.content, max(1, round(sticker.size_px * scale)))
        if sticker.rotation_deg:
            # Screen rotation is clockwise, PIL's is counter-clockwise
            tile = tile.rotate(-sticker.rotation_deg, resample=Image.Resampling.BICUBIC, expand=True)
        canvas.paste(tile, (round(center_x - tile.width / 2), round(center_y - tile.height / 2)), tile)

    logger.info("Baked %d stickers into %dx%d export", len(stickers), width, height)
    return encode_png(canvas)
