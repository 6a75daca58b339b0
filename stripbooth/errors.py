"""Error taxonomy for the capture/composite pipeline.

Every error carries a ``kind`` (stable machine-readable tag), an HTTP
``status_code`` used by the API layer, and a message a user can act on.
"""

from typing import Iterable, Optional


class BoothError(Exception):
    kind = "booth_error"
    status_code = 400
    default_message = "Something went wrong with the photo session."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_event(self) -> dict:
        return {"type": "error", "kind": self.kind, "detail": self.message}


class DeviceUnavailable(BoothError):
    kind = "device_unavailable"
    status_code = 503
    default_message = "Could not access the camera. Please grant camera permission and try again."


class DecodeFailure(BoothError):
    kind = "decode_failure"
    status_code = 422

    def __init__(self, slot_indices: Iterable[int] = (), artwork: bool = False, detail: str = ""):
        self.slot_indices = sorted(slot_indices)
        self.artwork = artwork
        self.detail = detail
        if artwork:
            message = "The frame artwork could not be loaded. Choose another frame or try again."
        elif len(self.slot_indices) == 1:
            message = f"Photo {self.slot_indices[0] + 1} could not be read. Please retake that photo."
        else:
            numbers = ", ".join(str(i + 1) for i in self.slot_indices)
            message = f"Photos {numbers} could not be read. Please retake those photos."
        super().__init__(message)

    def to_event(self) -> dict:
        event = super().to_event()
        event["slot_indices"] = self.slot_indices
        event["artwork"] = self.artwork
        return event


class SlotCountMismatch(BoothError):
    kind = "slot_count_mismatch"
    status_code = 409

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"This frame needs exactly {expected} photos but {actual} were provided.")


class SessionIncomplete(BoothError):
    kind = "session_incomplete"
    status_code = 409

    def __init__(self, empty_slots: Iterable[int]):
        self.empty_slots = sorted(empty_slots)
        numbers = ", ".join(str(i + 1) for i in self.empty_slots)
        super().__init__(f"Photos {numbers} are still missing. Finish taking photos first.")


class SlotOutOfRange(BoothError):
    kind = "slot_out_of_range"
    status_code = 404

    def __init__(self, index: int, slot_count: int):
        self.index = index
        super().__init__(f"There is no photo {index + 1}; this frame has {slot_count} photos.")


class UploadFailure(BoothError):
    kind = "upload_failed"
    status_code = 502
    default_message = "Saving to your gallery failed. Use download instead of save."


class InvalidTransition(BoothError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, operation: str, phase: str):
        self.operation = operation
        self.phase = phase
        super().__init__(f"Cannot {operation} while the booth is {phase.replace('_', ' ')}.")


class RestrictedTemplate(BoothError):
    kind = "restricted_template"
    status_code = 403
    default_message = "This frame is only available after signing in."


class UnknownPreset(BoothError):
    kind = "unknown_preset"
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Filter '{name}' does not exist.")


class StickerNotFound(BoothError):
    kind = "sticker_not_found"
    status_code = 404

    def __init__(self, sticker_id: str):
        self.sticker_id = sticker_id
        super().__init__(f"Sticker {sticker_id} was not found.")


class CompositeUnavailable(BoothError):
    kind = "composite_unavailable"
    status_code = 409
    default_message = "The photo strip is not ready yet. Finish taking photos first."
