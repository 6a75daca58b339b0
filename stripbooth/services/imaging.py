import asyncio
import io
from typing import Sequence

from PIL import Image, UnidentifiedImageError


def decode_raster(data: bytes) -> Image.Image:
    """Fully decode ``data`` into an RGBA image; raises ``ValueError`` on unreadable input."""
    if not data:
        raise ValueError("empty image data")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"cannot decode image: {e}") from e
    return img.convert("RGBA")


async def decode_raster_async(data: bytes) -> Image.Image:
    return await asyncio.to_thread(decode_raster, data)


def reraise_interrupts(results: Sequence) -> Sequence:
    """Results of ``gather(..., return_exceptions=True)``, with cancellation and exits raised again."""
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
    return results


def encode_png(img: Image.Image) -> bytes:
    # No pnginfo/exif is written, so identical pixels give identical bytes
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
