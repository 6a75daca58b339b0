import asyncio
import base64

import pytest

from stripbooth.errors import DecodeFailure, SessionIncomplete, SlotCountMismatch
from stripbooth.models.session import Rect, Slot, TemplateDescriptor
from stripbooth.services import filters
from stripbooth.services.compositor import Compositor, cover_fit
from tests.conftest import (
    CAPTURE_COLORS,
    FRAME_COLOR,
    assert_color,
    make_template,
    open_png,
    png_bytes,
    write_artwork,
)


def filled_slots(count, size=(640, 480)):
    slots = []
    for i in range(count):
        slot = Slot(index=i)
        slot.fill(png_bytes(size, CAPTURE_COLORS[i]))
        slots.append(slot)
    return slots


@pytest.mark.parametrize("src", [(640, 480), (480, 640), (1000, 100), (100, 1000), (300, 300)])
@pytest.mark.parametrize("rect", [(200, 300), (300, 200), (150, 150), (1234, 77)])
def test_cover_fit_matches_rect_aspect_inside_source(src, rect):
    left, top, right, bottom = cover_fit(*src, *rect)

    assert left >= 0 and top >= 0
    assert right <= src[0] + 1e-9 and bottom <= src[1] + 1e-9
    assert (right - left) / (bottom - top) == pytest.approx(rect[0] / rect[1])
    # centred crop: one axis is kept whole
    assert (right - left) == pytest.approx(src[0]) or (bottom - top) == pytest.approx(src[1])
    assert left == pytest.approx(src[0] - right)
    assert top == pytest.approx(src[1] - bottom)


def test_three_slot_strip(tmp_path):
    template = make_template(tmp_path, 3)

    composite = asyncio.run(Compositor().compose(filled_slots(3), filters.IDENTITY, template))

    assert (composite.width, composite.height) == (200, 900)
    image = open_png(composite.png)
    assert image.size == (200, 900)
    for i in range(3):
        assert_color(image.getpixel((100, 300 * i + 150)), CAPTURE_COLORS[i])
        # border of the frame artwork is drawn over the photo
        assert_color(image.getpixel((3, 300 * i + 3)), FRAME_COLOR, tolerance=0)


@pytest.mark.parametrize("preset_name", ["none", "warm"])
def test_compose_is_deterministic(tmp_path, preset_name):
    template = make_template(tmp_path, 2)
    compositor = Compositor()
    preset = filters.get_preset(preset_name)

    first = asyncio.run(compositor.compose(filled_slots(2), preset, template))
    second = asyncio.run(compositor.compose(filled_slots(2), preset, template))

    assert first.png == second.png


def test_filter_applies_to_photos_only(tmp_path):
    template = make_template(tmp_path, 3)

    composite = asyncio.run(Compositor().compose(filled_slots(3), filters.get_preset("grayscale"), template))

    image = open_png(composite.png)
    r, g, b = image.getpixel((100, 450))
    assert r == g == b
    assert_color(image.getpixel((3, 3)), FRAME_COLOR, tolerance=0)


def test_photo_covers_whole_rect(tmp_path):
    rects = [Rect(x=0, y=0, width=200, height=300)]
    artwork = write_artwork(tmp_path / "open.png", (200, 300), rects, border=0)
    template = TemplateDescriptor(slot_count=1, rects=rects, frame_artwork_url=artwork)

    composite = asyncio.run(Compositor().compose(filled_slots(1, size=(1000, 100)), filters.IDENTITY, template))

    image = open_png(composite.png)
    for corner in [(0, 0), (199, 0), (0, 299), (199, 299)]:
        assert_color(image.getpixel(corner), CAPTURE_COLORS[0])


def test_output_size_follows_artwork_not_photos(tmp_path):
    template = make_template(tmp_path, 2)

    composite = asyncio.run(Compositor().compose(filled_slots(2, size=(4000, 3000)), filters.IDENTITY, template))

    assert (composite.width, composite.height) == (200, 600)


def test_slot_count_mismatch(tmp_path):
    template = make_template(tmp_path, 3)

    with pytest.raises(SlotCountMismatch):
        asyncio.run(Compositor().compose(filled_slots(2), filters.IDENTITY, template))


def test_incomplete_session(tmp_path):
    template = make_template(tmp_path, 3)
    slots = filled_slots(3)
    slots[2].clear()

    with pytest.raises(SessionIncomplete) as exc_info:
        asyncio.run(Compositor().compose(slots, filters.IDENTITY, template))

    assert exc_info.value.empty_slots == [2]


def test_missing_artwork(tmp_path):
    template = make_template(tmp_path, 2).model_copy(update={"frame_artwork_url": str(tmp_path / "missing.png")})

    with pytest.raises(DecodeFailure) as exc_info:
        asyncio.run(Compositor().compose(filled_slots(2), filters.IDENTITY, template))

    assert exc_info.value.artwork
    assert exc_info.value.to_event()["artwork"] is True


def test_undecodable_photo_names_its_slot(tmp_path):
    template = make_template(tmp_path, 3)
    slots = filled_slots(3)
    slots[1].fill(b"definitely not a png")
    before = [slot.image for slot in slots]

    with pytest.raises(DecodeFailure) as exc_info:
        asyncio.run(Compositor().compose(slots, filters.IDENTITY, template))

    assert exc_info.value.slot_indices == [1]
    assert "Photo 2" in exc_info.value.message
    assert [slot.image for slot in slots] == before
    assert all(slot.is_filled for slot in slots)


def test_data_url_artwork(tmp_path):
    rects = [Rect(x=0, y=0, width=200, height=300)]
    path = write_artwork(tmp_path / "inline.png", (200, 300), rects)
    with open(path, "rb") as f:
        data_url = "data:image/png;base64," + base64.b64encode(f.read()).decode()
    template = TemplateDescriptor(slot_count=1, rects=rects, frame_artwork_url=data_url)

    composite = asyncio.run(Compositor().compose(filled_slots(1), filters.IDENTITY, template))

    assert (composite.width, composite.height) == (200, 300)
