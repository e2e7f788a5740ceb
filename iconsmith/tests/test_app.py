"""Tests for the command-line entry point."""

import argparse
import logging

import numpy as np
import pytest
from PIL import Image

from iconsmith.app import main, parse_grid
from iconsmith.errors import IconsmithError
from iconsmith.imaging import pipeline as pipeline_module
from iconsmith.io.codec import load_image, save_image
from iconsmith.io.presets import PresetManager
from iconsmith.models import EffectConfig, PixelBuffer


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_parse_grid():
    assert parse_grid("5x2") == (5, 2)
    assert parse_grid("3X1") == (3, 1)
    for bad in ("5", "ax2", "0x3"):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_grid(bad)


def test_renders_file(tmp_path, red_square):
    src = save_image(red_square, tmp_path / "in" / "square.png")
    out = tmp_path / "out"
    assert main([str(src), "-o", str(out), "--size", "64"]) == 0
    icon = load_image(out / "square.png")
    assert (icon.width, icon.height) == (64, 64)
    assert icon.alpha[0, 0] == 0


def test_renders_directory_with_cleanup(tmp_path, red_square):
    src_dir = tmp_path / "in"
    save_image(red_square, src_dir / "one.png")
    save_image(red_square, src_dir / "two.png")
    out = tmp_path / "out"
    assert main([str(src_dir), "-o", str(out), "--size", "32", "--clean", "--format", "webp"]) == 0
    assert sorted(p.name for p in out.iterdir()) == ["one.webp", "two.webp"]


def test_sprite_sheet(tmp_path):
    arr = np.full((40, 80, 4), 255, dtype=np.uint8)
    arr[10:30, 10:30] = (255, 0, 0, 255)
    arr[10:30, 50:70] = (0, 0, 255, 255)
    src = save_image(PixelBuffer.from_array(arr), tmp_path / "sheet.png")
    out = tmp_path / "out"
    assert main([str(src), "-o", str(out), "--size", "48", "--sheet", "2x1", "--clean"]) == 0
    assert sorted(p.name for p in out.iterdir()) == ["sheet_01.png", "sheet_02.png"]


def test_bad_input_counts_as_failure(tmp_path, red_square):
    bad = tmp_path / "broken.png"
    bad.write_bytes(b"definitely not a png")
    good = save_image(red_square, tmp_path / "good.png")
    out = tmp_path / "out"
    assert main([str(bad), str(good), "-o", str(out), "--size", "32"]) == 1
    assert [p.name for p in out.iterdir()] == ["good.png"]


def test_preset_is_applied(tmp_path, solid_red):
    PresetManager().put("dim", EffectConfig(brightness=50, remove_background=False, cleanup_enabled=False))
    src = save_image(solid_red, tmp_path / "red.png")
    out = tmp_path / "out"
    assert main([str(src), "-o", str(out), "--size", "32", "--preset", "dim"]) == 0
    with Image.open(out / "red.png") as img:
        assert img.convert("RGBA").getpixel((16, 16)) == (128, 0, 0, 255)


def test_unknown_preset(tmp_path, red_square):
    src = save_image(red_square, tmp_path / "square.png")
    assert main([str(src), "-o", str(tmp_path / "out"), "--preset", "missing"]) == 2


def test_failed_cleanup_counts_as_failure(tmp_path, red_square, monkeypatch):
    def broken_cleanup(*args, **kwargs):
        raise IconsmithError("cleanup exploded")

    monkeypatch.setattr(pipeline_module, "remove_background_and_center", broken_cleanup)
    src = save_image(red_square, tmp_path / "square.png")
    out = tmp_path / "out"
    assert main([str(src), "-o", str(out), "--size", "32", "--clean"]) == 1
    assert not (out / "square.png").exists()
