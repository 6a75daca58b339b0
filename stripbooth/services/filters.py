"""Photo filters expressed as CSS-style channel adjustments.

Each preset is baked into pixels with the colour matrices of the W3C
Filter Effects module so the exported strip matches what a browser preview
shows with the equivalent ``filter:`` string.
"""

import math
from typing import Dict, List

import numpy as np
from PIL import Image, ImageFilter

from stripbooth.errors import UnknownPreset
from stripbooth.models.editing import FilterPreset

_PRESET_LIST = [
    FilterPreset(name="none", label="None"),
    FilterPreset(name="grayscale", label="Grayscale", saturate=0.0, grayscale=1.0),
    FilterPreset(name="sepia", label="Sepia", sepia=1.0),
    FilterPreset(name="vintage", label="Vintage", brightness=1.1, contrast=0.9, saturate=0.8, sepia=0.3, hue_rotate=10),
    FilterPreset(name="bright", label="Bright", brightness=1.3, contrast=1.1, saturate=1.2),
    FilterPreset(name="warm", label="Warm", saturate=1.3, sepia=0.3),
    FilterPreset(name="cool", label="Cool", saturate=1.2, hue_rotate=180),
    FilterPreset(name="bw", label="B&W", contrast=1.2, grayscale=1.0),
]

PRESETS: Dict[str, FilterPreset] = {preset.name: preset for preset in _PRESET_LIST}
IDENTITY = PRESETS["none"]


def get_preset(name: str) -> FilterPreset:
    try:
        return PRESETS[name]
    except KeyError:
        raise UnknownPreset(name) from None


def list_presets() -> List[FilterPreset]:
    return list(_PRESET_LIST)


def _saturate_matrix(s: float) -> np.ndarray:
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ])


def _sepia_matrix(amount: float) -> np.ndarray:
    k = 1.0 - min(max(amount, 0.0), 1.0)
    return np.array([
        [0.393 + 0.607 * k, 0.769 - 0.769 * k, 0.189 - 0.189 * k],
        [0.349 - 0.349 * k, 0.686 + 0.314 * k, 0.168 - 0.168 * k],
        [0.272 - 0.272 * k, 0.534 - 0.534 * k, 0.131 + 0.869 * k],
    ])


def _grayscale_matrix(amount: float) -> np.ndarray:
    k = 1.0 - min(max(amount, 0.0), 1.0)
    return np.array([
        [0.2126 + 0.7874 * k, 0.7152 - 0.7152 * k, 0.0722 - 0.0722 * k],
        [0.2126 - 0.2126 * k, 0.7152 + 0.2848 * k, 0.0722 - 0.0722 * k],
        [0.2126 - 0.2126 * k, 0.7152 - 0.7152 * k, 0.0722 + 0.9278 * k],
    ])


def _hue_rotate_matrix(degrees: float) -> np.ndarray:
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return np.array([
        [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
        [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
        [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
    ])


def _adjust_channels(rgb: np.ndarray, preset: FilterPreset) -> np.ndarray:
    # CSS clamps every primitive's output before the next one runs
    if preset.brightness != 1.0:
        rgb = np.clip(rgb * preset.brightness, 0.0, 255.0)
    if preset.contrast != 1.0:
        rgb = np.clip((rgb - 127.5) * preset.contrast + 127.5, 0.0, 255.0)
    if preset.saturate != 1.0:
        rgb = np.clip(rgb @ _saturate_matrix(preset.saturate).T, 0.0, 255.0)
    if preset.sepia != 0.0:
        rgb = np.clip(rgb @ _sepia_matrix(preset.sepia).T, 0.0, 255.0)
    if preset.grayscale != 0.0:
        rgb = np.clip(rgb @ _grayscale_matrix(preset.grayscale).T, 0.0, 255.0)
    if preset.hue_rotate % 360 != 0.0:
        rgb = np.clip(rgb @ _hue_rotate_matrix(preset.hue_rotate).T, 0.0, 255.0)
    if preset.invert != 0.0:
        amount = min(max(preset.invert, 0.0), 1.0)
        rgb = rgb * (1.0 - 2.0 * amount) + 255.0 * amount
    return rgb


def apply(raster: Image.Image, preset: FilterPreset) -> Image.Image:
    """Return a new image with ``preset`` baked in; the input is never modified."""
    if preset.is_identity:
        return raster.copy()

    mode = raster.mode
    rgba = np.asarray(raster.convert("RGBA"), dtype=np.float64)
    rgb = _adjust_channels(rgba[..., :3], preset)
    out = np.empty(rgba.shape, dtype=np.uint8)
    out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    out[..., 3] = rgba[..., 3].astype(np.uint8)
    result = Image.fromarray(out)

    if preset.blur > 0:
        alpha = result.getchannel("A")
        blurred = result.convert("RGB").filter(ImageFilter.GaussianBlur(radius=preset.blur))
        blurred.putalpha(alpha)
        result = blurred

    if mode in ("RGB", "RGBA"):
        return result.convert(mode)
    return result
