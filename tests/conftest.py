"""Shared test fixtures."""

import asyncio
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest
from PIL import Image

from stripbooth.config import Settings
from stripbooth.errors import DeviceUnavailable
from stripbooth.models.session import InputMethod, Rect, TemplateDescriptor
from stripbooth.services.camera import CaptureDevice
from stripbooth.services.compositor import Compositor
from stripbooth.services.export import ExportAdapter
from stripbooth.services.sequencer import CaptureSequencer

FRAME_COLOR = (200, 30, 30, 255)
FRAME_BORDER = 10
CAPTURE_COLORS = [
    (30, 120, 220),
    (40, 200, 90),
    (240, 200, 40),
    (150, 60, 200),
    (20, 20, 20),
    (250, 130, 180),
]


def png_bytes(size: Tuple[int, int], color) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def open_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img.convert("RGB")


def assert_color(actual, expected, tolerance: int = 2) -> None:
    assert all(abs(a - e) <= tolerance for a, e in zip(actual[:3], expected[:3])), (actual, expected)


def write_artwork(path: Path, size: Tuple[int, int], rects: List[Rect], border: int = FRAME_BORDER) -> str:
    """Opaque frame with a transparent window inset ``border`` pixels inside every rect."""
    artwork = Image.new("RGBA", size, FRAME_COLOR)
    for rect in rects:
        left, top, width, height = rect.box()
        window = Image.new("RGBA", (width - 2 * border, height - 2 * border), (0, 0, 0, 0))
        artwork.paste(window, (left + border, top + border))
    artwork.save(path, format="PNG")
    return str(path)


def make_template(tmp_path: Path, slot_count: int = 3, **kwargs) -> TemplateDescriptor:
    """A vertical strip of ``slot_count`` 200x300 slots."""
    rects = [Rect(x=0, y=300 * i, width=200, height=300) for i in range(slot_count)]
    artwork = write_artwork(tmp_path / f"frame_{slot_count}.png", (200, 300 * slot_count), rects)
    return TemplateDescriptor(
        template_id=kwargs.pop("template_id", f"strip-{slot_count}"),
        slot_count=slot_count,
        rects=rects,
        frame_artwork_url=artwork,
        **kwargs,
    )


@dataclass
class ScheduledCall:
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Timers that only fire when a test says so."""

    calls: List[ScheduledCall] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> List[ScheduledCall]:
        return [call for call in self.calls if not call.cancelled and not call.fired]

    def run_next(self) -> ScheduledCall:
        call = self.pending[0]
        call.fired = True
        call.callback()
        return call

    def run_until(self, predicate: Callable[[], bool], limit: int = 200) -> None:
        while not predicate():
            assert limit > 0 and self.pending, "scheduler ran dry before the condition held"
            self.run_next()
            limit -= 1

    def run_all(self, limit: int = 200) -> None:
        while self.pending:
            assert limit > 0, "timers keep rescheduling"
            self.run_next()
            limit -= 1


@dataclass
class FakeHandle:
    serial: int
    released: bool = False


class FakeCamera(CaptureDevice):
    """Camera double that hands out solid-colour frames and records device usage."""

    def __init__(self, fail: bool = False, frame_size: Tuple[int, int] = (640, 480)):
        self.fail = fail
        self.error: Optional[Exception] = None
        self.frame_size = frame_size
        self.gate: Optional[asyncio.Event] = None
        self.acquire_count = 0
        self.release_count = 0
        self.captured = 0
        self.overlapping_handles = 0
        self.handles: List[FakeHandle] = []
        self.current: Optional[FakeHandle] = None

    @property
    def is_active(self) -> bool:
        return self.current is not None

    async def acquire(self) -> FakeHandle:
        if self.current is not None:
            self.overlapping_handles += 1
        self.acquire_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.fail:
            raise DeviceUnavailable()
        self.release()
        handle = FakeHandle(serial=len(self.handles))
        self.handles.append(handle)
        self.current = handle
        return handle

    def release(self, handle: Optional[FakeHandle] = None) -> None:
        if handle is not None and handle is not self.current:
            handle.released = True
            return
        if self.current is not None:
            self.current.released = True
            self.release_count += 1
        self.current = None

    def capture_frame(self) -> Image.Image:
        if self.current is None:
            raise DeviceUnavailable("camera not running")
        color = CAPTURE_COLORS[self.captured % len(CAPTURE_COLORS)]
        self.captured += 1
        return Image.new("RGB", self.frame_size, color)


class GatedCompositor(Compositor):
    """Compositor whose every compose waits for the test to open its gate."""

    def __init__(self):
        super().__init__()
        self.gates: List[asyncio.Event] = []

    async def compose(self, slots, preset, template):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return await super().compose(slots, preset, template)


@dataclass
class RecordingExportAdapter(ExportAdapter):
    """Export adapter that keeps uploads in memory."""

    fail: bool = False
    raw: List[Tuple[int, bytes]] = field(default_factory=list)
    composites: List[dict] = field(default_factory=list)

    async def upload_raw_capture(self, slot_index: int, raster: bytes) -> str:
        if self.fail:
            raise ConnectionError("gallery unreachable")
        self.raw.append((slot_index + 1, raster))
        return f"photo-{len(self.raw)}"

    async def upload_composite(self, raster, session_ref, template_ref, clean=None):
        if self.fail:
            raise ConnectionError("gallery unreachable")
        self.composites.append(
            {"raster": raster, "session": session_ref, "template": template_ref, "clean": clean}
        )
        return f"strip-{len(self.composites)}"


def build_sequencer(
    template: TemplateDescriptor,
    camera: Optional[FakeCamera] = None,
    exporter: Optional[RecordingExportAdapter] = None,
    scheduler: Optional[ManualScheduler] = None,
    events: Optional[list] = None,
    input_method: InputMethod = InputMethod.camera,
    **kwargs,
) -> CaptureSequencer:
    return CaptureSequencer(
        template=template,
        camera=camera or FakeCamera(),
        exporter=exporter or RecordingExportAdapter(),
        input_method=input_method,
        scheduler=scheduler or ManualScheduler(),
        listener=events.append if events is not None else None,
        config=Settings(),
        **kwargs,
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def exporter() -> RecordingExportAdapter:
    return RecordingExportAdapter()


@pytest.fixture
def strip_template(tmp_path) -> TemplateDescriptor:
    return make_template(tmp_path, 3)
