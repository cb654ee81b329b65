import numpy as np
import pytest

from pixel_unfake.errors import InputError
from pixel_unfake.raster import Color, Raster, count_colors, palette_of


def test_from_bytes_rejects_mismatched_length() -> None:
    with pytest.raises(InputError):
        Raster.from_bytes(2, 2, b"\x00" * 15)


def test_from_bytes_round_trips_buffer() -> None:
    data = bytes(range(16))
    raster = Raster.from_bytes(2, 2, data)

    assert raster.size == (2, 2)
    assert raster.to_bytes() == data


@pytest.mark.parametrize("payload", [b"", b"definitely not an image"])
def test_decode_rejects_bad_payloads(payload: bytes) -> None:
    with pytest.raises(InputError):
        Raster.decode(payload)


def test_png_encoding_is_lossless() -> None:
    rng = np.random.default_rng(0)
    pixels = rng.integers(0, 256, size=(5, 7, 4), dtype=np.uint8)

    decoded = Raster.decode(Raster(pixels).encode_png())

    assert np.array_equal(decoded.pixels, pixels)


def test_palette_keeps_scan_order_and_skips_transparent() -> None:
    row = np.array(
        [
            [255, 0, 0, 255],
            [0, 0, 255, 255],
            [255, 0, 0, 255],
            [0, 255, 0, 0],
            [9, 9, 9, 128],
        ],
        dtype=np.uint8,
    )
    raster = Raster(row[None, :, :])

    assert palette_of(raster) == (Color(255, 0, 0, 255), Color(0, 0, 255, 255))
    assert count_colors(raster) == 2


def test_palette_of_transparent_image_is_empty() -> None:
    assert palette_of(Raster.blank(4, 4)) == ()
    assert count_colors(Raster.blank(4, 4)) == 0


@pytest.mark.parametrize(
    "text, expected",
    [
        ("#ff8000", Color(255, 128, 0, 255)),
        ("#ff800080", Color(255, 128, 0, 128)),
        ("rgb(1, 2, 3)", Color(1, 2, 3, 255)),
        ((4, 5, 6), Color(4, 5, 6, 255)),
    ],
)
def test_color_parse(text, expected) -> None:
    assert Color.parse(text) == expected


def test_color_parse_rejects_garbage() -> None:
    with pytest.raises(InputError):
        Color.parse("orange")
    with pytest.raises(InputError):
        Color.parse((300, 0, 0))


def test_color_formats() -> None:
    color = Color(16, 32, 48, 255)

    assert color.hex == "#102030ff"
    assert color.rgb_hex == "#102030"
    assert color.css_rgb == "rgb(16,32,48)"
