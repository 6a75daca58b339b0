import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stripbooth.api.dependencies import close_all_sessions, find_current_session
from stripbooth.api.routes import filters, photos, session, stickers, websocket
from stripbooth.config import settings
from stripbooth.errors import BoothError
from stripbooth.services.camera import camera_service

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    debug=settings.debug
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(session.router, prefix="/api")
app.include_router(stickers.router, prefix="/api")
app.include_router(filters.router, prefix="/api")
app.include_router(photos.router, prefix="/api")
app.include_router(websocket.router)


@app.exception_handler(BoothError)
async def booth_error_handler(request: Request, exc: BoothError):
    logger.info("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"kind": exc.kind, "detail": exc.message})


@app.on_event("shutdown")
async def shutdown_event():
    close_all_sessions()
    camera_service.release()


@app.get("/health")
async def health_check():
    current = find_current_session()
    return {
        "status": "healthy",
        "camera_active": camera_service.is_active,
        "phase": current.sequencer.phase if current else None,
    }
