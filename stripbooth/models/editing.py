from typing import List

from pydantic import BaseModel, Field

STICKER_MIN_PCT = 5.0
STICKER_MAX_PCT = 95.0
STICKER_MIN_SIZE = 24
STICKER_MAX_SIZE = 120
STICKER_DEFAULT_SIZE = 48


class FilterPreset(BaseModel):
    """Channel adjustments in CSS filter terms; 1.0 multipliers and 0 amounts are neutral."""

    name: str
    label: str
    brightness: float = 1.0
    contrast: float = 1.0
    saturate: float = 1.0
    sepia: float = 0.0
    grayscale: float = 0.0
    hue_rotate: float = 0.0
    blur: float = 0.0
    invert: float = 0.0

    @property
    def is_identity(self) -> bool:
        return (
            self.brightness == 1.0
            and self.contrast == 1.0
            and self.saturate == 1.0
            and self.sepia == 0.0
            and self.grayscale == 0.0
            and self.hue_rotate % 360 == 0.0
            and self.blur == 0.0
            and self.invert == 0.0
        )


class Sticker(BaseModel):
    id: str
    content: str
    x_pct: float = 50.0
    y_pct: float = 50.0
    size_px: float = STICKER_DEFAULT_SIZE
    rotation_deg: float = 0.0


class StickerCreateRequest(BaseModel):
    content: str = Field(min_length=1)


class StickerMoveRequest(BaseModel):
    x: float
    y: float


class StickerResizeRequest(BaseModel):
    delta: float


class StickerRotateRequest(BaseModel):
    delta: float


class StickerCategory(BaseModel):
    key: str
    name: str
    stickers: List[str]
