import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import cv2
from PIL import Image

from stripbooth.config import settings
from stripbooth.errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class CaptureDevice(ABC):
    """An exclusively-owned camera.

    ``acquire`` returns an opaque handle for the opened stream. Passing that
    handle back to ``release`` closes only that stream, so a caller whose
    open was superseded cannot stop a newer one.
    """

    @property
    @abstractmethod
    def is_active(self) -> bool:
        ...

    @abstractmethod
    async def acquire(self) -> Any:
        """Open the device, replacing any open stream; raises ``DeviceUnavailable`` when it cannot be opened."""

    @abstractmethod
    def release(self, handle: Any = None) -> None:
        """Stop ``handle``, or the current stream when None; safe to call when nothing is held."""

    @abstractmethod
    def capture_frame(self) -> Image.Image:
        """Current frame, mirrored like the live preview."""

    def get_preview_frame(self) -> Optional[str]:
        """Base64 JPEG for the live preview, or None when no frame is available."""
        return None


class CameraService(CaptureDevice):
    def __init__(self, index: Optional[int] = None):
        self.index = settings.camera_index if index is None else index
        self.camera = None
        self._active = False
        # One open at a time; a second acquire waits for the first to land
        self._open_lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    async def acquire(self):
        async with self._open_lock:
            self.release()
            # VideoCapture blocks while the driver opens the device
            return await asyncio.to_thread(self.initialize)

    def initialize(self):
        camera = cv2.VideoCapture(self.index)
        if not camera.isOpened():
            camera.release()
            logger.warning("Camera %s could not be opened", self.index)
            raise DeviceUnavailable()

        try:
            camera.set(cv2.CAP_PROP_FRAME_WIDTH, settings.camera_width)
            camera.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.camera_height)
            camera.set(cv2.CAP_PROP_FPS, settings.camera_fps)
        except cv2.error:
            camera.release()
            raise

        self.camera = camera
        self._active = True
        logger.info("Camera %s acquired", self.index)
        return camera

    def _read(self):
        if not self._active or self.camera is None:
            return None
        ret, frame = self.camera.read()
        if not ret:
            return None
        return cv2.flip(frame, 1)

    def capture_frame(self) -> Image.Image:
        frame = self._read()
        if frame is None:
            raise DeviceUnavailable("The camera stopped delivering frames. Please start the camera again.")
        return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

    def get_preview_frame(self) -> Optional[str]:
        frame = self._read()
        if frame is None:
            return None

        height, width = frame.shape[:2]
        preview_height = int(height * settings.preview_width / width)
        frame = cv2.resize(frame, (settings.preview_width, preview_height))

        _, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, settings.preview_quality])
        return base64.b64encode(buffer).decode("utf-8")

    def release(self, handle=None) -> None:
        if handle is not None and handle is not self.camera:
            # Already replaced by a newer open; the current stream stays up
            handle.release()
            return
        if self.camera is not None:
            self.camera.release()
            logger.info("Camera %s released", self.index)
        self.camera = None
        self._active = False


camera_service = CameraService()
