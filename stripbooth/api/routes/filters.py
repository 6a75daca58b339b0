from typing import List

from fastapi import APIRouter

from stripbooth.models.editing import FilterPreset
from stripbooth.services.filters import list_presets

router = APIRouter(prefix="/filters", tags=["filters"])


@router.get("", response_model=List[FilterPreset])
async def get_filters():
    return list_presets()
