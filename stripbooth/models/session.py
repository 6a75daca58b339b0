from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class SlotStatus(str, Enum):
    empty = "empty"
    filled = "filled"


class SequencerPhase(str, Enum):
    idle = "idle"
    acquiring = "acquiring"
    countdown = "countdown"
    snapshot_taken = "snapshot_taken"
    auto_advance = "auto_advance"
    all_filled = "all_filled"


class InputMethod(str, Enum):
    camera = "camera"
    upload = "upload"


class Rect(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def box(self):
        """Integer pixel box ``(left, top, width, height)`` on the template canvas."""
        return round(self.x), round(self.y), max(1, round(self.width)), max(1, round(self.height))


class TemplateDescriptor(BaseModel):
    """Frame layout supplied by the template gallery.

    Accepts both the gallery's camelCase keys (``slotCount``,
    ``frameArtworkUrl``...) and snake_case names.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    template_id: str = "custom"
    slot_count: int = Field(ge=1)
    rects: List[Rect]
    frame_artwork_url: str
    is_restricted: bool = False

    @model_validator(mode="after")
    def _rects_match_slots(self):
        if len(self.rects) != self.slot_count:
            raise ValueError(f"template declares {self.slot_count} slots but has {len(self.rects)} rects")
        return self


class Slot(BaseModel):
    index: int
    status: SlotStatus = SlotStatus.empty
    image: Optional[bytes] = None
    upload_id: Optional[str] = None

    @property
    def is_filled(self) -> bool:
        return self.status == SlotStatus.filled

    def fill(self, image: bytes):
        self.image = image
        self.upload_id = None
        self.status = SlotStatus.filled

    def clear(self):
        self.image = None
        self.upload_id = None
        self.status = SlotStatus.empty


class SessionCreateRequest(BaseModel):
    template: TemplateDescriptor
    input_method: InputMethod = InputMethod.camera
    filter: str = "none"
    authenticated: bool = False


class FileUploadRequest(BaseModel):
    files: List[str]


class FilterChangeRequest(BaseModel):
    name: str


class TemplateChangeRequest(BaseModel):
    template: TemplateDescriptor


class ExportRequest(BaseModel):
    preview_width: Optional[int] = Field(default=None, gt=0)


class SlotStatusResponse(BaseModel):
    index: int
    status: SlotStatus
    upload_id: Optional[str] = None


class SessionStatusResponse(BaseModel):
    session_id: Optional[str]
    phase: Optional[SequencerPhase]
    input_method: Optional[InputMethod]
    template_id: Optional[str]
    filter: Optional[str]
    current_index: int
    countdown: Optional[int]
    slots: List[SlotStatusResponse] = []
    filled_count: int
    composite_ready: bool


class FileIntakeResponse(BaseModel):
    success: bool
    accepted_slots: List[int]
    rejected_count: int
    failed_files: List[int]
    phase: SequencerPhase


class SessionExportResponse(BaseModel):
    success: bool
    filename: str
    download_url: str
    width: int
    height: int
    composite: str
