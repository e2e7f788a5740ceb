"""Tests for decoding and encoding raster images."""

import io

import numpy as np
import pytest
from PIL import Image

from iconsmith.errors import DecodeError
from iconsmith.io.codec import decode_image, encode_image, load_image, save_image


def test_png_keeps_alpha(red_square):
    data = encode_image(red_square, "PNG")
    assert data[:8] == b"\x89PNG\r\n\x1a\n"
    assert decode_image(data) == red_square


def test_jpeg_decodes_opaque():
    img = Image.new("RGB", (16, 8), (30, 120, 200))
    out = io.BytesIO()
    img.save(out, format="JPEG", quality=95)
    buffer = decode_image(out.getvalue())
    assert (buffer.width, buffer.height) == (16, 8)
    assert np.all(buffer.alpha == 255)
    assert abs(int(buffer.pixels[4, 8, 2]) - 200) <= 8


def test_ico_yields_largest_entry():
    img = Image.new("RGBA", (64, 64), (0, 255, 0, 255))
    out = io.BytesIO()
    img.save(out, format="ICO", sizes=[(16, 16), (64, 64)])
    buffer = decode_image(out.getvalue())
    assert (buffer.width, buffer.height) == (64, 64)


@pytest.mark.parametrize("data", [b"", b"not an image at all", b"\xff\xd8\xff\x00garbage"])
def test_invalid_bytes_raise(data):
    with pytest.raises(DecodeError):
        decode_image(data)


def test_jpeg_and_bmp_encoding_drops_alpha(red_square):
    for fmt in ("JPEG", "JPG", "BMP"):
        data = encode_image(red_square, fmt)
        with Image.open(io.BytesIO(data)) as img:
            assert img.mode == "RGB"


def test_save_and_load(tmp_path, red_square):
    path = save_image(red_square, tmp_path / "out" / "icon.png")
    assert path.exists()
    assert not list(path.parent.glob("*.tmp"))
    assert load_image(path) == red_square


def test_load_missing_file(tmp_path):
    with pytest.raises(DecodeError):
        load_image(tmp_path / "missing.png")
