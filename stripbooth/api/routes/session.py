import asyncio
import base64
import binascii
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from stripbooth.api.dependencies import (
    activate_session,
    find_current_session,
    get_camera_service,
    get_compositor,
    get_current_session,
    get_download_store,
    get_export_adapter,
    get_websocket_manager,
)
from stripbooth.errors import CompositeUnavailable
from stripbooth.models.session import (
    ExportRequest,
    FileIntakeResponse,
    FileUploadRequest,
    FilterChangeRequest,
    SessionCreateRequest,
    SessionExportResponse,
    SessionStatusResponse,
    SlotStatusResponse,
    TemplateChangeRequest,
)
from stripbooth.services.booth import BoothSession
from stripbooth.services.camera import CaptureDevice
from stripbooth.services.compositor import Compositor
from stripbooth.services.export import ExportAdapter, LocalExportAdapter
from stripbooth.services.filters import get_preset
from stripbooth.services.sequencer import CaptureSequencer
from stripbooth.services.websocket import WebSocketManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


def build_status(session: Optional[BoothSession]) -> SessionStatusResponse:
    if session is None:
        return SessionStatusResponse(
            session_id=None,
            phase=None,
            input_method=None,
            template_id=None,
            filter=None,
            current_index=0,
            countdown=None,
            filled_count=0,
            composite_ready=False,
        )

    sequencer = session.sequencer
    return SessionStatusResponse(
        session_id=session.session_id,
        phase=sequencer.phase,
        input_method=sequencer.input_method,
        template_id=sequencer.template.template_id,
        filter=sequencer.preset.name,
        current_index=sequencer.current_index,
        countdown=sequencer.countdown,
        slots=[
            SlotStatusResponse(index=slot.index, status=slot.status, upload_id=slot.upload_id)
            for slot in sequencer.slots
        ],
        filled_count=sequencer.filled_count,
        composite_ready=sequencer.composite is not None,
    )


def decode_upload(payload: str) -> bytes:
    # Browsers hand over data URLs; bare base64 is accepted too
    if payload.startswith("data:"):
        payload = payload.partition(",")[2]
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error:
        raise HTTPException(status_code=422, detail="Uploaded file is not valid base64") from None


@router.post("/create", response_model=dict)
async def create_session(
        request: SessionCreateRequest,
        camera_service: CaptureDevice = Depends(get_camera_service),
        export_adapter: ExportAdapter = Depends(get_export_adapter),
        compositor: Compositor = Depends(get_compositor),
        websocket_manager: WebSocketManager = Depends(get_websocket_manager)
):
    session_id = str(uuid.uuid4())
    sequencer = CaptureSequencer(
        template=request.template,
        camera=camera_service,
        exporter=export_adapter,
        compositor=compositor,
        input_method=request.input_method,
        preset=get_preset(request.filter),
        authenticated=request.authenticated,
        listener=websocket_manager.publish,
        session_ref=session_id,
    )
    activate_session(BoothSession(sequencer, session_id=session_id))

    logger.info(
        "Created session %s with template %s (%d slots, %s input)",
        session_id, request.template.template_id, request.template.slot_count, request.input_method.value,
    )

    return {
        "session_id": session_id,
        "template_id": request.template.template_id,
        "slot_count": request.template.slot_count,
        "input_method": request.input_method,
        "filter": request.filter,
    }


@router.post("/start", response_model=SessionStatusResponse)
async def start_sequence(session: BoothSession = Depends(get_current_session)):
    await session.sequencer.start_sequence()
    return build_status(session)


@router.post("/retake/{index}", response_model=SessionStatusResponse)
async def retake_photo(index: int, session: BoothSession = Depends(get_current_session)):
    await session.sequencer.retake(index)
    return build_status(session)


@router.post("/upload", response_model=FileIntakeResponse)
async def upload_photos(request: FileUploadRequest, session: BoothSession = Depends(get_current_session)):
    files = [decode_upload(payload) for payload in request.files]
    result = await session.sequencer.intake_files(files)
    return FileIntakeResponse(
        success=not result.rejected_count and not result.failed_files,
        accepted_slots=result.accepted_slots,
        rejected_count=result.rejected_count,
        failed_files=result.failed_files,
        phase=session.sequencer.phase,
    )


@router.put("/filter", response_model=SessionStatusResponse)
async def change_filter(request: FilterChangeRequest, session: BoothSession = Depends(get_current_session)):
    await session.sequencer.set_filter(get_preset(request.name))
    return build_status(session)


@router.put("/template", response_model=SessionStatusResponse)
async def change_template(request: TemplateChangeRequest, session: BoothSession = Depends(get_current_session)):
    await session.sequencer.change_template(request.template)
    return build_status(session)


@router.get("/status", response_model=SessionStatusResponse)
async def get_session_status():
    session = find_current_session()
    return build_status(session)


@router.get("/composite")
async def get_composite(session: BoothSession = Depends(get_current_session)):
    composite = session.sequencer.composite
    if composite is None:
        raise CompositeUnavailable()
    return Response(content=composite.png, media_type="image/png")


@router.post("/export", response_model=SessionExportResponse)
async def export_session(
        request: ExportRequest,
        session: BoothSession = Depends(get_current_session),
        download_store: LocalExportAdapter = Depends(get_download_store)
):
    exported = await session.export(request.preview_width)
    filename = await asyncio.to_thread(download_store.save_photo, exported.png)

    return SessionExportResponse(
        success=True,
        filename=filename,
        download_url=f"/api/photos/{filename}",
        width=exported.width,
        height=exported.height,
        composite=base64.b64encode(exported.png).decode("utf-8"),
    )


@router.delete("/reset")
async def reset_session():
    session = find_current_session()
    if session is not None:
        session.reset()
    return {"success": True}
