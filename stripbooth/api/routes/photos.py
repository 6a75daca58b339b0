import os

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from stripbooth.api.dependencies import get_download_store
from stripbooth.services.export import LocalExportAdapter

router = APIRouter(prefix="/photos", tags=["photos"])


@router.get("/{filename}")
async def download_photo(filename: str, download_store: LocalExportAdapter = Depends(get_download_store)):
    if os.path.basename(filename) != filename:
        raise HTTPException(status_code=404, detail="Photo not found")

    filepath = os.path.join(download_store.photos_dir, filename)
    if not os.path.exists(filepath):
        raise HTTPException(status_code=404, detail="Photo not found")

    return FileResponse(filepath, media_type="image/png", filename=filename)
