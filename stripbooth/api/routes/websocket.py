import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from stripbooth.api.dependencies import get_camera_service, get_websocket_manager
from stripbooth.config import settings
from stripbooth.services.camera import CaptureDevice
from stripbooth.services.websocket import WebSocketManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    camera_service: CaptureDevice = Depends(get_camera_service),
    websocket_manager: WebSocketManager = Depends(get_websocket_manager)
):
    """Live preview while the sequencer holds the camera; sequencer events arrive via broadcast."""
    await websocket_manager.connect(websocket)
    try:
        while True:
            # The preview never opens the camera itself, it only reads an acquired one
            frame = camera_service.get_preview_frame() if camera_service.is_active else None
            if frame:
                await websocket.send_text(json.dumps({
                    "type": "preview",
                    "data": frame
                }))
            await asyncio.sleep(1 / settings.preview_fps)
    except WebSocketDisconnect:
        websocket_manager.disconnect(websocket)
    except Exception as e:
        logger.warning("WebSocket error: %s", e)
        websocket_manager.disconnect(websocket)
