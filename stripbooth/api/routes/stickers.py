from typing import List

from fastapi import APIRouter, Depends

from stripbooth.api.dependencies import get_current_session
from stripbooth.models.editing import (
    Sticker,
    StickerCategory,
    StickerCreateRequest,
    StickerMoveRequest,
    StickerResizeRequest,
    StickerRotateRequest,
)
from stripbooth.services.booth import BoothSession
from stripbooth.services.stickers import STICKER_CATALOG

router = APIRouter(prefix="/stickers", tags=["stickers"])


@router.get("/catalog", response_model=List[StickerCategory])
async def get_catalog():
    return STICKER_CATALOG


@router.get("", response_model=List[Sticker])
async def list_stickers(session: BoothSession = Depends(get_current_session)):
    return session.stickers.list()


@router.post("", response_model=Sticker)
async def add_sticker(request: StickerCreateRequest, session: BoothSession = Depends(get_current_session)):
    return session.stickers.add(request.content)


@router.patch("/{sticker_id}/move", response_model=Sticker)
async def move_sticker(sticker_id: str, request: StickerMoveRequest, session: BoothSession = Depends(get_current_session)):
    return session.stickers.move(sticker_id, request.x, request.y)


@router.patch("/{sticker_id}/resize", response_model=Sticker)
async def resize_sticker(sticker_id: str, request: StickerResizeRequest, session: BoothSession = Depends(get_current_session)):
    return session.stickers.resize(sticker_id, request.delta)


@router.patch("/{sticker_id}/rotate", response_model=Sticker)
async def rotate_sticker(sticker_id: str, request: StickerRotateRequest, session: BoothSession = Depends(get_current_session)):
    return session.stickers.rotate(sticker_id, request.delta)


@router.delete("/{sticker_id}")
async def remove_sticker(sticker_id: str, session: BoothSession = Depends(get_current_session)):
    session.stickers.remove(sticker_id)
    return {"success": True}
