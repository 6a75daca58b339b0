"""Capture sequencer: countdown, snapshot, auto-advance and per-slot retake.

Everything here runs on the event loop thread. Blocking work (opening the
camera, decoding images, compositing) is awaited in worker threads, and
every completion that lands after the session moved on is detected through
``generation`` and dropped.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from stripbooth.config import Settings, settings
from stripbooth.errors import (
    BoothError,
    DeviceUnavailable,
    InvalidTransition,
    RestrictedTemplate,
    SlotCountMismatch,
    SlotOutOfRange,
    UploadFailure,
)
from stripbooth.fsm.capture_fsm import CaptureFSM
from stripbooth.models.editing import FilterPreset
from stripbooth.models.session import InputMethod, SequencerPhase, Slot, TemplateDescriptor
from stripbooth.services import filters
from stripbooth.services.camera import CaptureDevice
from stripbooth.services.compositor import CompositeRaster, Compositor, compositor as default_compositor
from stripbooth.services.export import ExportAdapter
from stripbooth.services.imaging import decode_raster_async, encode_png, reraise_interrupts

logger = logging.getLogger(__name__)

EventListener = Callable[[dict], None]

RETAKE_PHASES = {
    SequencerPhase.countdown,
    SequencerPhase.snapshot_taken,
    SequencerPhase.auto_advance,
    SequencerPhase.all_filled,
}


class LoopScheduler:
    def call_later(self, delay: float, callback: Callable[[], None]):
        return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class IntakeResult:
    accepted_slots: List[int] = field(default_factory=list)
    rejected_count: int = 0
    failed_files: List[int] = field(default_factory=list)


class CaptureSequencer:
    def __init__(
        self,
        template: TemplateDescriptor,
        camera: CaptureDevice,
        exporter: ExportAdapter,
        compositor: Compositor = None,
        input_method: InputMethod = InputMethod.camera,
        preset: FilterPreset = None,
        authenticated: bool = False,
        scheduler=None,
        listener: Optional[EventListener] = None,
        session_ref: Optional[str] = None,
        config: Settings = None,
    ):
        self.template = template
        self.camera = camera
        self.exporter = exporter
        self.compositor = compositor or default_compositor
        self.input_method = input_method
        self.preset = preset or filters.IDENTITY
        self.authenticated = authenticated
        self.scheduler = scheduler or LoopScheduler()
        self.listener = listener
        self.session_ref = session_ref or uuid.uuid4().hex
        self.config = config or settings

        self.fsm = CaptureFSM()
        self.slots = [Slot(index=i) for i in range(template.slot_count)]
        self.current_index = 0
        self.countdown: Optional[int] = None
        self.composite: Optional[CompositeRaster] = None
        # Bumped by retake, reset and close; async completions from an older generation are dropped
        self.generation = 0

        self._render_seq = 0
        self._timer = None
        self._tasks: Set[asyncio.Task] = set()
        self._alive = True

    @property
    def phase(self) -> SequencerPhase:
        return SequencerPhase(self.fsm.state)

    @property
    def filled_count(self) -> int:
        return sum(1 for slot in self.slots if slot.is_filled)

    @property
    def is_complete(self) -> bool:
        return self.phase == SequencerPhase.all_filled

    def next_empty_index(self, start: int = 0) -> Optional[int]:
        count = len(self.slots)
        for offset in range(count):
            index = (start + offset) % count
            if not self.slots[index].is_filled:
                return index
        return None

    # Camera capture

    async def start_sequence(self):
        if self.phase == SequencerPhase.acquiring:
            logger.debug("Camera start already in progress, ignoring")
            return
        if self.input_method != InputMethod.camera:
            raise InvalidTransition("start the camera", "using uploaded photos")
        self._check_access(self.template)
        if self.phase != SequencerPhase.idle:
            raise InvalidTransition("start the camera", self.phase.value)

        index = self.next_empty_index()
        if index is None:
            raise InvalidTransition("start the camera", "full")
        self.current_index = index
        self.fsm.fire("acquire", "start the camera")
        if await self._acquire_device():
            self._begin_countdown("device_ready")

    def tick(self):
        if self.phase != SequencerPhase.countdown:
            raise InvalidTransition("count down", self.phase.value)
        self.countdown -= 1
        if self.countdown > 0:
            self._emit({"type": "countdown", "index": self.current_index, "remaining": self.countdown})
            self._schedule(self.config.countdown_interval, self.tick)
            return
        self.countdown = None
        self._snapshot()

    async def retake(self, index: int):
        self._check_index(index)
        phase = self.phase

        if phase == SequencerPhase.acquiring:
            # The acquisition already in flight will count down on this slot
            self._clear_slot(index)
            self.composite = None
            self.current_index = index
            return

        if self.input_method == InputMethod.upload:
            if phase not in (SequencerPhase.idle, SequencerPhase.all_filled):
                raise InvalidTransition("retake a photo", phase.value)
            self._supersede()
            self._clear_slot(index)
            self.composite = None
            self.current_index = index
            self.fsm.fire("rewind", "retake a photo")
            return

        if phase not in RETAKE_PHASES:
            raise InvalidTransition("retake a photo", phase.value)
        logger.info("Retaking photo %d of session %s", index + 1, self.session_ref)
        self._supersede()
        self._clear_slot(index)
        self.composite = None
        self.current_index = index
        self.fsm.fire("acquire", "retake a photo")
        if await self._acquire_device():
            self._begin_countdown("device_ready")

    def reset(self):
        self._supersede()
        self.camera.release()
        for slot in self.slots:
            slot.clear()
        self.composite = None
        self.current_index = 0
        self.fsm.fire("abort")
        logger.info("Session %s reset", self.session_ref)
        self._emit({"type": "reset"})

    def close(self):
        """Tear down: nothing scheduled or in flight may touch this session afterwards."""
        self._alive = False
        self._supersede()
        self.camera.release()
        for task in list(self._tasks):
            task.cancel()

    async def _acquire_device(self) -> bool:
        generation = self.generation
        # Only one handle at a time: the old one is fully stopped first
        self.camera.release()
        try:
            handle = await self.camera.acquire()
        except Exception as e:
            if not self._is_current(generation):
                logger.info("Ignoring camera failure for a superseded session: %s", e)
                return False
            self.fsm.fire("device_failed")
            if isinstance(e, DeviceUnavailable):
                self._emit(e.to_event())
                raise
            logger.warning("Camera failed to open: %s", e)
            error = DeviceUnavailable()
            self._emit(error.to_event())
            raise error from e
        if not self._is_current(generation):
            logger.info("Releasing camera acquired for a superseded session")
            self.camera.release(handle)
            return False
        return True

    def _begin_countdown(self, trigger: str):
        self.fsm.fire(trigger)
        self.countdown = self.config.countdown_steps
        self._emit({"type": "countdown", "index": self.current_index, "remaining": self.countdown})
        self._schedule(self.config.countdown_interval, self.tick)

    def _snapshot(self):
        index = self.current_index
        try:
            frame = self.camera.capture_frame()
        except DeviceUnavailable as e:
            logger.warning("Snapshot for photo %d failed: %s", index + 1, e)
            self.camera.release()
            self.fsm.fire("abort")
            self._emit(e.to_event())
            return

        self.fsm.fire("shoot")
        self._store(index, encode_png(frame))

        next_index = self.next_empty_index(index + 1)
        if next_index is None:
            self._complete()
            return
        self.current_index = next_index
        self.fsm.fire("advance")
        self._schedule(self.config.auto_advance_delay, lambda: self._begin_countdown("resume"))

    # File upload

    async def intake_files(self, files: Sequence[bytes]) -> IntakeResult:
        if self.input_method != InputMethod.upload:
            raise InvalidTransition("upload photos", "using the camera")
        self._check_access(self.template)
        if self.phase != SequencerPhase.idle:
            raise InvalidTransition("upload photos", self.phase.value)

        remaining = len(self.slots) - self.filled_count
        accepted = list(files[:remaining])
        result = IntakeResult(rejected_count=len(files) - len(accepted))
        if result.rejected_count:
            logger.warning("Rejected %d files beyond the %d open slots", result.rejected_count, remaining)
            self._emit({"type": "files_rejected", "count": result.rejected_count, "remaining": remaining})

        generation = self.generation
        decoded = reraise_interrupts(
            await asyncio.gather(*(decode_raster_async(data) for data in accepted), return_exceptions=True)
        )
        if not self._is_current(generation):
            logger.info("Discarding uploaded files for a superseded session")
            return IntakeResult(rejected_count=len(files))

        for file_index, image in enumerate(decoded):
            if isinstance(image, Exception):
                logger.warning("Uploaded file %d could not be decoded: %s", file_index, image)
                result.failed_files.append(file_index)
                continue
            index = self.next_empty_index()
            if index is None:
                result.rejected_count += 1
                continue
            self._store(index, encode_png(image))
            result.accepted_slots.append(index)

        if result.failed_files:
            self._emit({"type": "files_unreadable", "files": result.failed_files})
        next_index = self.next_empty_index()
        if next_index is None:
            if self.phase == SequencerPhase.idle:
                self._complete()
        else:
            self.current_index = next_index
        return result

    # Compositing

    async def render(
        self,
        preset: Optional[FilterPreset] = None,
        template: Optional[TemplateDescriptor] = None,
    ) -> CompositeRaster:
        """Composite the current slots; the result is published unless superseded meanwhile.

        ``preset`` and ``template`` replace the session's own only once their
        composite is published, so a failed or superseded render leaves the
        previous filter, frame and composite in place.
        """
        preset = preset or self.preset
        template = template or self.template
        generation = self.generation
        self._render_seq += 1
        render_seq = self._render_seq
        slots = [slot.model_copy() for slot in self.slots]

        composite = await self.compositor.compose(slots, preset, template)
        if not self._is_current(generation) or render_seq != self._render_seq:
            logger.info("Discarding composite from a superseded render")
            return composite

        self.preset = preset
        self.template = template
        self.composite = composite
        self._emit({"type": "composite_ready", "width": composite.width, "height": composite.height})
        return composite

    async def render_clean(self) -> bytes:
        """The strip without filter, for downstream persistence; nothing is published."""
        if self.preset.is_identity and self.composite is not None:
            return self.composite.png
        slots = [slot.model_copy() for slot in self.slots]
        composite = await self.compositor.compose(slots, filters.IDENTITY, self.template)
        return composite.png

    async def set_filter(self, preset: FilterPreset) -> Optional[CompositeRaster]:
        if self.is_complete:
            return await self.render(preset=preset)
        self.preset = preset
        return None

    async def change_template(self, template: TemplateDescriptor) -> Optional[CompositeRaster]:
        if template.slot_count != len(self.slots):
            raise SlotCountMismatch(template.slot_count, len(self.slots))
        self._check_access(template)
        if self.is_complete:
            return await self.render(template=template)
        self.template = template
        return None

    async def _auto_render(self, render_seq: int):
        if render_seq != self._render_seq:
            # A filter or frame change already rendered the finished strip
            return
        try:
            await self.render()
        except BoothError as e:
            logger.warning("Automatic composite for session %s failed: %s", self.session_ref, e)
            self._emit(e.to_event())

    def _complete(self):
        self.fsm.fire("finish")
        if self.input_method == InputMethod.camera:
            self.camera.release()
        logger.info("All %d photos of session %s are in", len(self.slots), self.session_ref)
        self._emit({"type": "all_filled"})
        render_seq = self._render_seq
        self._schedule(self.config.settle_delay, lambda: self._spawn(self._auto_render(render_seq)))

    # Uploads

    def upload_composite(self, raster: bytes, clean: Optional[bytes] = None):
        self._spawn(self._upload_composite(raster, clean))

    async def _upload_capture(self, index: int, raster: bytes):
        try:
            upload_id = await self.exporter.upload_raw_capture(index, raster)
        except Exception as e:
            self._report_upload_failure(e, slot_index=index)
            return
        slot = self.slots[index]
        # A retake may have replaced the photo while it was uploading
        if slot.image is raster:
            slot.upload_id = upload_id

    async def _upload_composite(self, raster: bytes, clean: Optional[bytes]):
        try:
            await self.exporter.upload_composite(raster, self.session_ref, self.template.template_id, clean=clean)
        except Exception as e:
            self._report_upload_failure(e)

    def _report_upload_failure(self, error: Exception, slot_index: Optional[int] = None):
        logger.warning("Upload failed for session %s (slot %s): %s", self.session_ref, slot_index, error)
        event = UploadFailure().to_event()
        event["type"] = "upload_failed"
        event["slot_index"] = slot_index
        self._emit(event)

    # Helpers

    def _store(self, index: int, raster: bytes):
        self.slots[index].fill(raster)
        self._emit({"type": "photo_captured", "index": index, "order": index + 1})
        self._spawn(self._upload_capture(index, raster))

    def _clear_slot(self, index: int):
        self.slots[index].clear()
        self._emit({"type": "slot_cleared", "index": index})

    def _check_index(self, index: int):
        if not 0 <= index < len(self.slots):
            raise SlotOutOfRange(index, len(self.slots))

    def _check_access(self, template: TemplateDescriptor):
        if template.is_restricted and not self.authenticated:
            raise RestrictedTemplate()

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self.generation

    def _supersede(self):
        self._cancel_timer()
        self.countdown = None
        self.generation += 1

    def _schedule(self, delay: float, callback: Callable[[], None]):
        self._cancel_timer()
        generation = self.generation

        def fire():
            if not self._is_current(generation):
                return
            self._timer = None
            callback()

        self._timer = self.scheduler.call_later(delay, fire)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _emit(self, event: dict):
        if self.listener is None:
            return
        event.setdefault("session_id", self.session_ref)
        try:
            self.listener(event)
        except Exception:
            logger.exception("Event listener failed on %s", event.get("type"))

    async def drain(self):
        """Wait for background uploads and renders spawned so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
