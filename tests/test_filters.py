import pytest
from PIL import Image

from stripbooth.errors import UnknownPreset
from stripbooth.models.editing import FilterPreset
from stripbooth.services import filters


def solid(color, mode="RGB", size=(4, 4)):
    return Image.new(mode, size, color)


def test_identity_returns_an_unmodified_copy():
    source = solid((200, 100, 50))

    result = filters.apply(source, filters.IDENTITY)

    assert result is not source
    assert result.tobytes() == source.tobytes()


def test_input_is_never_modified():
    source = solid((200, 100, 50))
    before = source.tobytes()

    filters.apply(source, filters.get_preset("vintage"))

    assert source.tobytes() == before


def test_grayscale_equalises_channels():
    result = filters.apply(solid((200, 100, 50)), filters.get_preset("grayscale"))

    r, g, b = result.getpixel((0, 0))
    assert r == g == b


def test_brightness_scales_channels():
    preset = FilterPreset(name="dim", label="Dim", brightness=0.5)

    result = filters.apply(solid((200, 100, 50)), preset)

    assert result.getpixel((1, 1)) == (100, 50, 25)


def test_full_invert():
    preset = FilterPreset(name="negative", label="Negative", invert=1.0)

    result = filters.apply(solid((200, 100, 50)), preset)

    assert result.getpixel((0, 0)) == (55, 155, 205)


def test_full_sepia_on_white():
    result = filters.apply(solid((255, 255, 255)), filters.get_preset("sepia"))

    assert result.getpixel((0, 0)) == (255, 255, 239)


def test_alpha_and_mode_are_preserved():
    source = solid((200, 100, 50, 77), mode="RGBA")

    result = filters.apply(source, filters.get_preset("bw"))

    assert result.mode == "RGBA"
    assert result.getpixel((2, 2))[3] == 77


def test_blur_keeps_size():
    preset = FilterPreset(name="soft", label="Soft", blur=2.0)

    result = filters.apply(solid((10, 20, 30), size=(16, 9)), preset)

    assert result.size == (16, 9)
    assert all(abs(a - b) <= 1 for a, b in zip(result.getpixel((8, 4)), (10, 20, 30)))


def test_presets_are_listed_in_display_order():
    names = [preset.name for preset in filters.list_presets()]

    assert names[0] == "none"
    assert {"grayscale", "sepia", "vintage", "bright", "warm", "cool", "bw"} <= set(names)
    assert filters.IDENTITY.is_identity
    assert not any(p.is_identity for p in filters.list_presets() if p.name != "none")


def test_unknown_preset():
    with pytest.raises(UnknownPreset) as exc_info:
        filters.get_preset("lomo")

    assert exc_info.value.status_code == 404
    assert "lomo" in exc_info.value.message
